"""Decision handlers and the router that dispatches to them."""

from clawsec.actions.base import ActionContext, ActionHandler, build_audit_entry
from clawsec.actions.block import BlockHandler
from clawsec.actions.confirm import ConfirmHandler
from clawsec.actions.log import LogHandler
from clawsec.actions.router import DecisionRouter
from clawsec.actions.warn import WarnHandler

__all__ = [
    "ActionContext",
    "ActionHandler",
    "BlockHandler",
    "ConfirmHandler",
    "DecisionRouter",
    "LogHandler",
    "WarnHandler",
    "build_audit_entry",
]
