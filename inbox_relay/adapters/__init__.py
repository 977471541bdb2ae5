from inbox_relay.adapters.base import BasePlatformAdapter
from inbox_relay.adapters.whatsapp import WhatsAppAdapter

__all__ = ["BasePlatformAdapter", "WhatsAppAdapter"]
