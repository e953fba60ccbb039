from .push_subscription import PushSubscription, PushSubscriptionCreate
from .trigger_firing import FiringOutcome, TriggerFiring

__all__ = [
    "FiringOutcome",
    "PushSubscription",
    "PushSubscriptionCreate",
    "TriggerFiring",
]
