"""
Properties application.

Only the Residence record lives here: every ledger transaction must be
attributable to exactly one residence. Room inventory and applications are
owned by other systems.

Usage:
    from properties.models import Residence
    from properties.services import get_residence, get_default_residence
"""
