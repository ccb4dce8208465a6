"""Session name grammar.

Every gtwatch-managed tmux session is named after the agent it hosts:

    gt-mayor, gt-deacon          town-level singletons
    gt-<rig>-witness             rig singleton
    gt-<rig>-refinery            rig singleton
    gt-<rig>-crew-<name>         crew member (human-managed)
    gt-<rig>-<name>              worker ("polecat")

The same identities appear as mail addresses (``mayor/``,
``<rig>/witness``, ``<rig>/crew/<name>``, ``<rig>/polecats/<name>``), so
both forms decode to one ``SessionIdentity`` and encode back symmetrically.
Rig names cannot contain ``-``; worker and crew names may.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from gtwatch.exceptions import SessionNameError

SESSION_PREFIX = "gt-"
CREW_MARKER = "crew"


class Role(str, Enum):
    MAYOR = "mayor"
    DEACON = "deacon"
    WITNESS = "witness"
    REFINERY = "refinery"
    CREW = "crew"
    POLECAT = "polecat"


TOWN_ROLES = frozenset({Role.MAYOR, Role.DEACON})
RIG_SINGLETON_ROLES = frozenset({Role.WITNESS, Role.REFINERY})


@dataclass(frozen=True)
class SessionIdentity:
    role: Role
    rig: str | None = None
    name: str | None = None

    def __post_init__(self) -> None:
        if self.role in TOWN_ROLES:
            if self.rig or self.name:
                raise SessionNameError(f"{self.role.value} is town-level and takes no rig or name")
            return
        if not self.rig or "-" in self.rig or "/" in self.rig:
            raise SessionNameError(f"invalid rig name {self.rig!r}")
        if self.role in RIG_SINGLETON_ROLES:
            if self.name:
                raise SessionNameError(f"{self.role.value} is a rig singleton and takes no name")
            return
        if not self.name or "/" in self.name:
            raise SessionNameError(f"{self.role.value} requires a name")
        if self.role is Role.POLECAT and _shadows_role(self.name):
            raise SessionNameError(f"worker name {self.name!r} collides with a role")

    @property
    def session_name(self) -> str:
        return encode(self)

    @property
    def address(self) -> str:
        if self.role in TOWN_ROLES:
            return f"{self.role.value}/"
        if self.role in RIG_SINGLETON_ROLES:
            return f"{self.rig}/{self.role.value}"
        if self.role is Role.CREW:
            return f"{self.rig}/crew/{self.name}"
        return f"{self.rig}/polecats/{self.name}"


def _shadows_role(name: str) -> bool:
    return (
        name in (Role.WITNESS.value, Role.REFINERY.value)
        or name.startswith(CREW_MARKER + "-")
    )


def encode(identity: SessionIdentity) -> str:
    if identity.role in TOWN_ROLES:
        return f"{SESSION_PREFIX}{identity.role.value}"
    if identity.role in RIG_SINGLETON_ROLES:
        return f"{SESSION_PREFIX}{identity.rig}-{identity.role.value}"
    if identity.role is Role.CREW:
        return f"{SESSION_PREFIX}{identity.rig}-{CREW_MARKER}-{identity.name}"
    return f"{SESSION_PREFIX}{identity.rig}-{identity.name}"


def decode(session: str) -> SessionIdentity:
    """Parse a session name. Raises SessionNameError if it is not ours."""
    if not session.startswith(SESSION_PREFIX):
        raise SessionNameError(f"{session!r} lacks the {SESSION_PREFIX!r} prefix")
    rest = session[len(SESSION_PREFIX):]
    if rest == Role.MAYOR.value:
        return SessionIdentity(Role.MAYOR)
    if rest == Role.DEACON.value:
        return SessionIdentity(Role.DEACON)

    rig, sep, suffix = rest.partition("-")
    if not rig or not sep or not suffix:
        raise SessionNameError(f"{session!r} is not gt-<rig>-<role>")
    if suffix in (Role.WITNESS.value, Role.REFINERY.value):
        return SessionIdentity(Role(suffix), rig=rig)
    if suffix.startswith(CREW_MARKER + "-"):
        return SessionIdentity(Role.CREW, rig=rig, name=suffix[len(CREW_MARKER) + 1:])
    return SessionIdentity(Role.POLECAT, rig=rig, name=suffix)


def from_address(address: str) -> SessionIdentity:
    """Parse the mail-address form of an identity."""
    if address in ("mayor/", "deacon/"):
        return SessionIdentity(Role(address[:-1]))
    parts = address.split("/")
    if len(parts) == 2 and parts[1] in (Role.WITNESS.value, Role.REFINERY.value):
        return SessionIdentity(Role(parts[1]), rig=parts[0])
    if len(parts) == 3 and parts[1] == CREW_MARKER:
        return SessionIdentity(Role.CREW, rig=parts[0], name=parts[2])
    if len(parts) == 3 and parts[1] == "polecats":
        return SessionIdentity(Role.POLECAT, rig=parts[0], name=parts[2])
    raise SessionNameError(f"unrecognized address {address!r}")


def try_decode(session: str) -> SessionIdentity | None:
    try:
        return decode(session)
    except SessionNameError:
        return None


def rig_of(session: str) -> str | None:
    """The rig segment of a ``gt-<rig>-<anything>`` name, or None."""
    if not session.startswith(SESSION_PREFIX):
        return None
    parts = session.split("-", 2)
    if len(parts) < 3 or not parts[1] or not parts[2]:
        return None
    return parts[1]


def is_crew_session(session: str) -> bool:
    """Crew sessions (gt-<rig>-crew-<name>) are human-managed.

    Checked on the raw segments so that malformed crew names still count.
    """
    parts = session.split("-")
    return len(parts) >= 4 and parts[0] + "-" == SESSION_PREFIX and parts[2] == CREW_MARKER
