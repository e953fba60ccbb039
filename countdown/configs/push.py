from pydantic import BaseModel, Field


class PushConfig(BaseModel):
    """Web Push delivery configuration.

    The VAPID pair identifies this application server to every push
    service.  The dev defaults are a pre-generated P-256 pair; production
    MUST override them via ``COUNTDOWN_Push_VapidPrivateKey`` /
    ``COUNTDOWN_Push_VapidPublicKey``.
    """

    Enable: bool = Field(default=True, description="Enable Web Push delivery")

    VapidPrivateKey: str = Field(
        default="7cfvzrTIbTSF9K19hgYynTUBL55RVcwUcdUFTyqNrXY",
        description="VAPID private key (URL-safe base64 32-byte raw scalar, or PKCS#8 PEM/DER)",
    )
    VapidPublicKey: str = Field(
        default="BAOq279gQq1nFosSDJKXvEtaHnjtyTqAOKMDNvgOHF0LuhlaoSkZIAk115lZBK0Ywr2ROtXgz-Spmxkda0XOrso",
        description="VAPID public key (URL-safe base64, 65-byte uncompressed EC point). "
        "Derived from the private key when empty.",
    )
    VapidContactEmail: str = Field(default="admin@countdown.dev", description="VAPID contact (mailto:...)")
    VapidTokenTTLSeconds: int = Field(
        default=12 * 60 * 60,
        description="Lifetime of the signed VAPID JWT. Push services reject anything above 24h.",
    )

    MessageTTLSeconds: int = Field(
        default=86400,
        description="How long the push service keeps an undelivered message (TTL header)",
    )
    Urgency: str = Field(default="high", description="Urgency header: very-low | low | normal | high")

    TimeoutSeconds: float = Field(default=10.0, description="Per-request timeout against the push service")
    MaxRetries: int = Field(default=2, description="Immediate retries for 429/5xx/timeouts (0 disables)")
    BackoffBaseSeconds: float = Field(default=1.0, description="First retry delay; doubles per attempt")
    BackoffMaxSeconds: float = Field(default=30.0, description="Upper bound for any single retry delay")
