# Make `from billscan.models import Lead, LeadStatus` work
from .orm import Lead  # re-export
from .lead_state import LeadStatus  # re-export
