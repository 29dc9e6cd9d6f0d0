import logging
from abc import ABC, abstractmethod
from typing import List

from .error_handling import ErrorKind
from .models import Alert, ChannelKind

logger = logging.getLogger(__name__)


class NotifierBase(ABC):
    @abstractmethod
    def notify(self, alert: Alert, channel: ChannelKind):
        """
        Deliver an alert over one channel.
        Raise ChannelDeliveryError (or any exception) when delivery fails.
        """
        pass


class LoggingNotifier(NotifierBase):
    """Default notifier: writes the alert to the log instead of delivering it."""

    def notify(self, alert: Alert, channel: ChannelKind):
        logger.info(f"[{channel.value}] Alert #{alert.id} {alert.title}: {alert.message}")


def dispatch(notifier: NotifierBase, alert: Alert, channels: List[ChannelKind]) -> int:
    """
    Send an alert to every channel of its rule. Failures are logged and
    never retried; returns how many deliveries succeeded.
    """
    delivered = 0
    for channel in channels:
        try:
            notifier.notify(alert, channel)
            delivered += 1
        except Exception as e:
            logger.error(f"[{ErrorKind.CHANNEL_DELIVERY_FAILURE.value}] "
                         f"Notification failed for channel {channel.value}: {e}")
    return delivered
