"""Telegram notification module for the VU course monitor."""

from vu_monitor.notify.telegram import AdminReply, TelegramGateway
from vu_monitor.notify.formatters import MessageFormatter, activity_button

__all__ = ["AdminReply", "TelegramGateway", "MessageFormatter", "activity_button"]
