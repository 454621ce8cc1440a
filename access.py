"""
Access control gate

Every protected route runs an ordered chain of steps:

    authenticate -> authorize(role) -> handler

Each step takes the previous step's result and either returns the next
value or raises, which halts the chain. The role is read from the user
record on every request, so a demotion applies to the very next call even
while the caller's token is still valid.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from errors import Forbidden
from schemas import Role
from stores import AccountStore
from tokens import Claim, TokenService, bearer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    claim: Claim
    user: Optional[Dict[str, Any]] = None

    @property
    def email(self) -> str:
        return self.claim.email


Step = Callable[[Any], Any]


class AccessGate:
    def __init__(self, tokens: TokenService, accounts: AccountStore):
        self.tokens = tokens
        self.accounts = accounts

    def authenticate(self, authorization: Optional[str]) -> Principal:
        return Principal(claim=self.tokens.verify(bearer(authorization)))

    def authorizer(self, role: Role) -> Step:
        def authorize(principal: Principal) -> Principal:
            user = self.accounts.find_by_email(principal.email)
            if not user or user.get("role") != role.value:
                logger.info("Denied %s: requires %s, has %s", principal.email, role.value,
                            user.get("role") if user else "no account")
                raise Forbidden()
            return Principal(claim=principal.claim, user=user)
        return authorize

    def chain(self, role: Optional[Role] = None) -> List[Step]:
        steps: List[Step] = [self.authenticate]
        if role is not None:
            steps.append(self.authorizer(role))
        return steps

    def check(self, authorization: Optional[str], role: Optional[Role] = None) -> Principal:
        result = authorization
        for step in self.chain(role):
            result = step(result)
        return result
