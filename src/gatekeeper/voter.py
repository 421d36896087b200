"""
Voters decide on permissions and paths.

Each voter gives a tri-state opinion: allow, deny or abstain. A ChainVoter
combines the opinions of several voters with a strategy.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, Iterable, List, Optional, Union

from loguru import logger

from .errors import SecurityError
from .matcher import PathMatcher
from .models import User

if TYPE_CHECKING:
    from .store import BackingStore


class Vote(str, Enum):
    """Opinion of a voter."""
    ALLOW = "allow"
    DENY = "deny"
    ABSTAIN = "abstain"


class Strategy(str, Enum):
    """How a ChainVoter combines opinions."""
    AFFIRMATIVE = "affirmative"     # one allow is enough
    CONSENSUS = "consensus"         # more allows than denies
    UNANIMOUS = "unanimous"         # every voter allows


class Voter(ABC):
    """Interface of a voter."""

    @abstractmethod
    def is_granted(self, code: str, user: Optional[User]) -> Vote:
        """Opinion on a permission for the user, None for anonymous."""

    @abstractmethod
    def is_allowed(self, path: str, method: Optional[str], user: Optional[User]) -> Vote:
        """Opinion on a path and method for the user, None for anonymous."""


class ModelVoter(Voter):
    """
    Voter answering from a backing store.

    Checking an unknown permission registers it on the store.
    """

    def __init__(self, model: "BackingStore", matcher: Optional[PathMatcher] = None):
        self.model = model
        self.matcher = matcher or PathMatcher()

    def is_granted(self, code: str, user: Optional[User]) -> Vote:
        if not self.model.has_permission(code):
            logger.debug(f"Registering unknown permission {code}")
            self.model.add_permission(code)

        if user is not None and (user.is_super_user or user.is_permission_granted(code)):
            return Vote.ALLOW

        return Vote.DENY

    def is_allowed(self, path: str, method: Optional[str], user: Optional[User]) -> Vote:
        if not self.matcher.matches(path, method, self.model.get_secured_paths()):
            return Vote.ALLOW

        if user is not None and (user.is_super_user or user.is_path_allowed(path, method, self.matcher)):
            return Vote.ALLOW

        return Vote.DENY


class ChainVoter(Voter):
    """
    Combines the opinions of several voters.

    An empty chain has no opinion and abstains.
    """

    def __init__(
        self,
        strategy: Union[Strategy, str] = Strategy.AFFIRMATIVE,
        voters: Optional[Iterable[Voter]] = None,
    ):
        self.set_strategy(strategy)
        self._voters: List[Voter] = []

        if voters:
            self.add_voters(voters)

    def set_strategy(self, strategy: Union[Strategy, str]) -> None:
        """
        Set the strategy.

        Raises:
            SecurityError: INVALID_CONFIGURATION for an unknown strategy
        """
        try:
            self.strategy = Strategy(strategy)
        except ValueError:
            raise SecurityError.invalid_configuration(
                f"Invalid voter strategy {strategy!r}, try affirmative, consensus or unanimous"
            ) from None

    @property
    def voters(self) -> List[Voter]:
        return list(self._voters)

    def add_voter(self, voter: Voter) -> bool:
        """Add a voter, returns False when it is already in the chain."""
        if any(voter is existing for existing in self._voters):
            return False

        self._voters.append(voter)
        return True

    def add_voters(self, voters: Iterable[Voter]) -> None:
        for index, voter in enumerate(voters):
            if not isinstance(voter, Voter):
                raise SecurityError.invalid_configuration(f"Value at index {index} is not a voter")
            self.add_voter(voter)

    def remove_voter(self, voter: Voter) -> bool:
        for index, existing in enumerate(self._voters):
            if existing is voter:
                del self._voters[index]
                return True

        return False

    def __len__(self) -> int:
        return len(self._voters)

    def is_granted(self, code: str, user: Optional[User]) -> Vote:
        return self._decide(voter.is_granted(code, user) for voter in self._voters)

    def is_allowed(self, path: str, method: Optional[str], user: Optional[User]) -> Vote:
        return self._decide(voter.is_allowed(path, method, user) for voter in self._voters)

    def _decide(self, votes: Iterable[Vote]) -> Vote:
        if not self._voters:
            return Vote.ABSTAIN

        allows = denies = abstains = 0
        for vote in votes:
            if vote is Vote.ALLOW:
                if self.strategy is Strategy.AFFIRMATIVE:
                    # remaining voters are not asked
                    return Vote.ALLOW
                allows += 1
            elif vote is Vote.DENY:
                denies += 1
            else:
                abstains += 1

        if self.strategy is Strategy.AFFIRMATIVE:
            return Vote.DENY if denies else Vote.ABSTAIN

        if self.strategy is Strategy.CONSENSUS:
            return Vote.ALLOW if allows > denies else Vote.DENY

        return Vote.ALLOW if denies == 0 and abstains == 0 else Vote.DENY
