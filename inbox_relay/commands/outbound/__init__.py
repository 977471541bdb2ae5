from inbox_relay.commands.outbound.send_outbound_command import (
    OutboundResult,
    SendOutboundCommand,
)

__all__ = ["OutboundResult", "SendOutboundCommand"]
