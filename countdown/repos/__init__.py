from .push_subscription import PushSubscriptionRepository
from .trigger_firing import TriggerFiringRepository

__all__ = ["PushSubscriptionRepository", "TriggerFiringRepository"]
