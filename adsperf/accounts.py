"""
Ad account resolution.

Account persistence lives in the surrounding application; this module only
needs something that can answer "which account is selected or active".
"""
from dataclasses import dataclass
from typing import Optional, Protocol

from adsperf.config import MetaAPIConfig, config
from adsperf.exceptions import AuthMissingError, NoActiveAccountError
from adsperf.observability import get_logger
from adsperf.validators import validate_account_id

logger = get_logger(__name__)


@dataclass(frozen=True)
class AdAccount:
    """An ad account together with the token used to read it."""
    account_id: str
    access_token: str = ""
    name: Optional[str] = None

    @property
    def graph_id(self) -> str:
        """Account ID in the ``act_<id>`` form the Graph API expects."""
        if self.account_id.startswith("act_"):
            return self.account_id
        return f"act_{self.account_id}"

    def __repr__(self) -> str:
        return f"AdAccount(account_id={self.account_id!r}, name={self.name!r})"


class AccountStore(Protocol):
    """Lookup for stored ad accounts."""

    async def get_active_account(self) -> Optional[AdAccount]:
        ...

    async def get_account(self, account_id: str) -> Optional[AdAccount]:
        ...


class EnvAccountStore:
    """Account store for deployments without an account database."""

    def __init__(self, settings: Optional[MetaAPIConfig] = None):
        self.settings = settings or config.meta

    def _account(self) -> Optional[AdAccount]:
        if not self.settings.ad_account_id:
            return None
        return AdAccount(
            account_id=self.settings.ad_account_id,
            access_token=self.settings.access_token,
            name="environment",
        )

    async def get_active_account(self) -> Optional[AdAccount]:
        return self._account()

    async def get_account(self, account_id: str) -> Optional[AdAccount]:
        account = self._account()
        if account and account.graph_id == AdAccount(account_id).graph_id:
            return account
        return None


async def resolve_account(
    store: Optional[AccountStore] = None,
    account_id: Optional[str] = None,
    settings: Optional[MetaAPIConfig] = None,
) -> AdAccount:
    """
    Pick the account a request should read.

    Order: the explicitly selected account, then the store's active account,
    then META_AD_ACCOUNT_ID / META_ACCESS_TOKEN from the environment.

    Raises:
        ValidationError: account_id is malformed
        NoActiveAccountError: No account could be found
        AuthMissingError: The account has no access token
    """
    settings = settings or config.meta
    account_id = validate_account_id(account_id)
    store = store or EnvAccountStore(settings)

    if account_id:
        account = await store.get_account(account_id)
        if account is None:
            raise NoActiveAccountError("Ad account not found", account_id)
    else:
        account = await store.get_active_account()

    if account is None and settings.ad_account_id:
        logger.warning(
            "No active ad account, falling back to environment credentials",
            extra={"account_id": settings.ad_account_id}
        )
        account = AdAccount(
            account_id=settings.ad_account_id,
            access_token=settings.access_token,
            name="environment",
        )

    if account is None:
        raise NoActiveAccountError(
            "No active ad account",
            "Select an account or set META_AD_ACCOUNT_ID"
        )

    if not account.access_token:
        raise AuthMissingError("Ad account has no access token", account.account_id)

    return account
