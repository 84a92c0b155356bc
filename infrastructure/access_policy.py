import hmac
from typing import List, Optional


class AccessPolicy:
    """
    Decides whether a principal established by the transport may open a session.

    The transport has already accepted the connection before this runs. With
    no allow-list (or in public mode) every such principal is admitted.
    """

    def __init__(self, allowed_principals: Optional[List[str]] = None, is_public: bool = False):
        self.allowed_principals = allowed_principals or []
        self.is_public = is_public

    def is_allowed(self, principal: Optional[str]) -> bool:
        if not principal:
            return False

        if self.is_public:
            return True

        if not self.allowed_principals:
            return True

        for allowed in self.allowed_principals:
            if self._timing_safe_compare(principal, allowed):
                return True

        return False

    def _timing_safe_compare(self, a: str, b: str) -> bool:
        return hmac.compare_digest(a.encode('utf-8'), b.encode('utf-8'))
