"""Backend clients for the Korean legal-information APIs."""

from .admin_rule_client import AdminRuleClient
from .base_client import BaseLegalClient
from .interpretation_client import InterpretationClient
from .ordinance_client import OrdinanceClient
from .precedent_client import PrecedentClient
from .statute_client import StatuteClient

__all__ = [
    "AdminRuleClient",
    "BaseLegalClient",
    "InterpretationClient",
    "OrdinanceClient",
    "PrecedentClient",
    "StatuteClient",
]
