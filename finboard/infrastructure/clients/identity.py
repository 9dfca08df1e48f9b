"""Identity provider HTTP client for resolving bearer tokens to principals"""

import httpx
from typing import Optional
from finboard.domain.models import Principal
from finboard.domain.permissions import parse_role
from finboard.domain.exceptions import IdentityProviderError
from finboard.config import settings


class IdentityClient:
    """Client for the hosted identity provider's user endpoint"""

    def __init__(self, base_url: str | None = None, api_key: str | None = None, timeout: float | None = None):
        self.base_url = base_url or settings.identity_api_base
        self.api_key = api_key if api_key is not None else settings.identity_api_key
        self.timeout = timeout or settings.http_timeout_seconds

    async def get_principal(self, access_token: str) -> Optional[Principal]:
        """
        Resolve an access token to the authenticated user.

        Returns:
            Principal, or None when the provider rejects the token (401/403)

        Raises:
            IdentityProviderError: On timeout, other HTTP errors, or an unparseable response
        """
        headers = {"Authorization": f"Bearer {access_token}"}
        if self.api_key:
            headers["apikey"] = self.api_key

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.get(f"{self.base_url}/auth/v1/user", headers=headers)
                if response.status_code in (401, 403):
                    return None
                response.raise_for_status()
                data = response.json()

                app_metadata = data.get("app_metadata") or {}
                return Principal(
                    user_id=str(data["id"]),
                    role=parse_role(app_metadata.get("role_name")).value,
                )

            except httpx.TimeoutException as e:
                raise IdentityProviderError(f"Identity provider timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                raise IdentityProviderError(f"Identity provider error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise IdentityProviderError(f"Identity provider unreachable: {e}") from e
            except (KeyError, ValueError, TypeError, AttributeError) as e:
                raise IdentityProviderError(f"Invalid user payload from identity provider: {e}") from e
