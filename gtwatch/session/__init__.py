"""Sessions — the tmux controller and the session naming grammar.

- Tmux: subprocess contract, sentinel errors, freshness state machine
- AgentMatcher: which pane commands count as a running agent
- names: encode/decode gt-<rig>-<role> session names
"""

from gtwatch.session.agents import AgentMatcher
from gtwatch.session.names import Role, SessionIdentity, decode, encode, is_crew_session
from gtwatch.session.tmux import SessionSet, Tmux

__all__ = [
    "AgentMatcher",
    "Role",
    "SessionIdentity",
    "SessionSet",
    "Tmux",
    "decode",
    "encode",
    "is_crew_session",
]
