from .convergence import ConvergenceLoop, ConvergenceState, HttpLeadSource, RepositoryLeadSource, converge  # re-export
from .conversation import Conversation, TurnInFlight, http_reply_fn  # re-export
