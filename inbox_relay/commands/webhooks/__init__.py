"""Webhook command handlers."""

from inbox_relay.commands.webhooks.whatsapp_command import ProcessWhatsAppWebhookCommand

__all__ = ["ProcessWhatsAppWebhookCommand"]
