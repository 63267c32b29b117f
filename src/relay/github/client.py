"""Async GitHub REST client used by the relay.

Covers the handful of endpoints the relay touches: the OAuth token
exchange, repository hooks, pull request reads (metadata, unified diff,
changed files) and the two review writes (issue comment, pull request
patch).

No token is stored on the client. Each method receives the credential of
the user or registration it acts for. Nothing here retries; a failed call
raises GitHubAPIError with the upstream status and body attached.
"""

import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from src.relay.github.models import ChangedFile, HookInfo, PullRequestInfo


logger = logging.getLogger(__name__)


API_VERSION = "2022-11-28"
JSON_MEDIA_TYPE = "application/vnd.github+json"
DIFF_MEDIA_TYPE = "application/vnd.github.diff"
FILES_PER_PAGE = 100
# GitHub stops listing pull request files after 3000 entries
MAX_FILE_PAGES = 30


class GitHubAPIError(Exception):
    """A GitHub call failed or could not be made.

    Attributes:
        message: Short description, safe to log.
        status_code: Upstream HTTP status, None when no response arrived.
        response_body: Raw upstream body, if there was one.
        request_url: URL of the failed call.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url


class RateLimitError(GitHubAPIError):
    """GitHub refused the call because the token's quota is spent.

    Attributes:
        reset_at: Epoch seconds at which the quota resets.
        retry_after: Seconds until a call may succeed again.
    """

    def __init__(
        self,
        message: str,
        reset_at: Optional[int] = None,
        retry_after: Optional[int] = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.reset_at = reset_at
        self.retry_after = retry_after


class OAuthExchangeError(GitHubAPIError):
    """Raised when GitHub refuses an OAuth code exchange."""


def _int_header(response: httpx.Response, name: str) -> Optional[int]:
    raw = response.headers.get(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _is_rate_limited(response: httpx.Response) -> bool:
    if response.status_code == 429:
        return True
    return response.status_code == 403 and _int_header(response, "x-ratelimit-remaining") == 0


def _error_from_response(response: httpx.Response) -> GitHubAPIError:
    """Build the exception describing an error response."""
    url = str(response.url)

    if _is_rate_limited(response):
        reset_at = _int_header(response, "x-ratelimit-reset")
        retry_after = _int_header(response, "retry-after")
        if retry_after is None and reset_at is not None:
            retry_after = max(0, reset_at - int(time.time()))
        return RateLimitError(
            "GitHub API rate limit exceeded",
            reset_at=reset_at,
            retry_after=retry_after,
            status_code=response.status_code,
            response_body=response.text,
            request_url=url,
        )

    return GitHubAPIError(
        f"GitHub API error: {response.status_code}",
        status_code=response.status_code,
        response_body=response.text,
        request_url=url,
    )


def _json_object(
    response: httpx.Response,
    request_url: str,
    error_cls: type = GitHubAPIError,
) -> Dict[str, Any]:
    """Decode a response body that must be a JSON object.

    Raises:
        error_cls: The body is not JSON, or not an object.
    """
    try:
        data = response.json()
    except ValueError as e:
        raise error_cls(
            "GitHub returned a body that is not JSON",
            status_code=response.status_code,
            response_body=response.text[:500],
            request_url=request_url,
        ) from e
    if not isinstance(data, dict):
        raise error_cls(
            f"GitHub returned a JSON {type(data).__name__}, expected an object",
            status_code=response.status_code,
            response_body=response.text[:500],
            request_url=request_url,
        )
    return data


def _hook_id(data: Dict[str, Any], request_url: str) -> int:
    hook_id = data.get("id")
    if isinstance(hook_id, bool) or not isinstance(hook_id, int):
        raise GitHubAPIError(
            "GitHub hook response carried no id",
            response_body=str(data)[:500],
            request_url=request_url,
        )
    return hook_id


class GitHubClient:
    """Async GitHub API client.

    Attributes:
        base_url: REST API root; point it at /api/v3 for GitHub Enterprise.
        oauth_url: Token endpoint of the OAuth web flow.
        timeout: Per-request timeout in seconds.

    Example:
        >>> async with GitHubClient() as client:
        ...     await client.create_comment("octo", "widgets", 42, "Hello!", token)
    """

    def __init__(
        self,
        base_url: str = "https://api.github.com",
        oauth_url: str = "https://github.com/login/oauth/access_token",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.oauth_url = oauth_url
        self.timeout = timeout
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None

    @property
    def http(self) -> httpx.AsyncClient:
        """Shared connection pool, opened lazily."""
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "X-GitHub-Api-Version": API_VERSION,
                    "User-Agent": "review-relay/1.0",
                },
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._http

    async def close(self) -> None:
        if self._http is not None and not self._http.is_closed:
            await self._http.aclose()
        self._http = None

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _call(
        self,
        method: str,
        path: str,
        token: str,
        body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        accept: str = JSON_MEDIA_TYPE,
    ) -> httpx.Response:
        """Send one authenticated API request.

        Args:
            method: HTTP verb.
            path: Path below base_url, e.g. /repos/octo/widgets/hooks.
            token: Credential to act with.
            body: JSON request body.
            params: Query string parameters.
            accept: Media type to ask for; DIFF_MEDIA_TYPE for raw diffs.

        Raises:
            RateLimitError: The token's quota is exhausted.
            GitHubAPIError: No response, or a status of 400 or above.
        """
        headers = {"Authorization": f"Bearer {token}", "Accept": accept}
        try:
            response = await self.http.request(
                method, path, json=body, params=params, headers=headers
            )
        except httpx.RequestError as e:
            logger.error(
                "GitHub request could not be sent",
                extra={"method": method, "path": path, "error": str(e)},
            )
            raise GitHubAPIError(
                f"GitHub API request failed: {e}",
                request_url=f"{self.base_url}{path}",
            ) from e

        if response.status_code < 400:
            return response

        error = _error_from_response(response)
        logger.error(
            "GitHub call failed: %s %s -> %s",
            method,
            path,
            response.status_code,
            extra={
                "rate_limited": isinstance(error, RateLimitError),
                "response_body": response.text[:500],
            },
        )
        raise error

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    async def exchange_oauth_code(
        self,
        code: str,
        client_id: str,
        client_secret: str,
    ) -> str:
        """Trade an OAuth authorization code for a user access token.

        A bad or expired code comes back as HTTP 200 with an ``error``
        field, so a missing token is treated the same as an error status.

        Raises:
            OAuthExchangeError: If no access token is returned.
        """
        try:
            response = await self.http.post(
                self.oauth_url,
                json={"client_id": client_id, "client_secret": client_secret, "code": code},
                headers={"Accept": "application/json"},
            )
        except httpx.RequestError as e:
            raise OAuthExchangeError(
                f"OAuth exchange request failed: {e}",
                request_url=self.oauth_url,
            ) from e

        if response.status_code >= 400:
            raise OAuthExchangeError(
                f"OAuth exchange failed: {response.status_code}",
                status_code=response.status_code,
                response_body=response.text,
                request_url=self.oauth_url,
            )

        data = _json_object(response, self.oauth_url, error_cls=OAuthExchangeError)
        token = data.get("access_token")
        if not isinstance(token, str) or not token:
            reason = data.get("error", "no access token")
            logger.warning("OAuth exchange returned no token", extra={"error": reason})
            raise OAuthExchangeError(
                f"OAuth exchange failed: {reason}",
                status_code=response.status_code,
                request_url=self.oauth_url,
            )

        logger.info("OAuth code exchanged for access token")
        return token

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    @staticmethod
    def _hook_body(url: str, secret: Optional[str]) -> Dict[str, Any]:
        config: Dict[str, Any] = {"url": url, "content_type": "json"}
        if secret:
            config["secret"] = secret
        return {"active": True, "events": ["pull_request"], "config": config}

    async def create_webhook(
        self,
        owner: str,
        repo: str,
        url: str,
        secret: Optional[str],
        token: str,
    ) -> int:
        """Install a pull_request hook delivering JSON to ``url``.

        GitHub answers 422 when a hook with the same URL already exists;
        register_webhook() handles that case.

        Returns:
            The id GitHub assigned to the hook.
        """
        path = f"/repos/{owner}/{repo}/hooks"
        response = await self._call(
            "POST", path, token, body={"name": "web", **self._hook_body(url, secret)}
        )
        hook_id = _hook_id(_json_object(response, path), path)
        logger.info(
            "Webhook installed on %s/%s",
            owner,
            repo,
            extra={"hook_id": hook_id, "url": url},
        )
        return hook_id

    async def update_webhook(
        self,
        owner: str,
        repo: str,
        hook_id: int,
        url: str,
        secret: Optional[str],
        token: str,
    ) -> int:
        """Rewrite an existing hook's config, replacing its secret."""
        path = f"/repos/{owner}/{repo}/hooks/{hook_id}"
        response = await self._call("PATCH", path, token, body=self._hook_body(url, secret))
        updated_id = _hook_id(_json_object(response, path), path)
        logger.info(
            "Webhook updated on %s/%s",
            owner,
            repo,
            extra={"hook_id": updated_id, "url": url},
        )
        return updated_id

    async def register_webhook(
        self,
        owner: str,
        repo: str,
        url: str,
        secret: Optional[str],
        token: str,
    ) -> int:
        """Make sure the repository has one hook for ``url`` signed with ``secret``.

        A hook already pointing at ``url`` is updated in place, so
        registering again rotates the secret instead of failing.

        Returns:
            Id of the created or updated hook.
        """
        target = url.rstrip("/")
        for hook in await self.list_webhooks(owner, repo, token):
            if hook.url.rstrip("/") == target:
                return await self.update_webhook(owner, repo, hook.hook_id, url, secret, token)
        return await self.create_webhook(owner, repo, url, secret, token)

    async def list_webhooks(self, owner: str, repo: str, token: str) -> List[HookInfo]:
        path = f"/repos/{owner}/{repo}/hooks"
        response = await self._call("GET", path, token, params={"per_page": 100})
        try:
            items = response.json()
        except ValueError as e:
            raise GitHubAPIError(
                "GitHub returned a body that is not JSON",
                status_code=response.status_code,
                response_body=response.text[:500],
                request_url=path,
            ) from e
        if not isinstance(items, list):
            raise GitHubAPIError(
                "GitHub hook listing is not a JSON array",
                status_code=response.status_code,
                response_body=response.text[:500],
                request_url=path,
            )
        return [HookInfo.from_github_response(item) for item in items]

    # ------------------------------------------------------------------
    # Pull request reads
    # ------------------------------------------------------------------

    async def get_pull_request(
        self,
        owner: str,
        repo: str,
        pr_number: int,
        token: str,
    ) -> PullRequestInfo:
        response = await self._call("GET", f"/repos/{owner}/{repo}/pulls/{pr_number}", token)
        return PullRequestInfo.from_github_response(response.json())

    async def get_pull_request_diff(
        self,
        owner: str,
        repo: str,
        pr_number: int,
        token: str,
    ) -> str:
        """Fetch the whole pull request as one unified diff."""
        response = await self._call(
            "GET",
            f"/repos/{owner}/{repo}/pulls/{pr_number}",
            token,
            accept=DIFF_MEDIA_TYPE,
        )
        return response.text

    async def list_pull_request_files(
        self,
        owner: str,
        repo: str,
        pr_number: int,
        token: str,
    ) -> List[ChangedFile]:
        """Collect every changed file, one page of FILES_PER_PAGE at a time."""
        files: List[ChangedFile] = []
        path = f"/repos/{owner}/{repo}/pulls/{pr_number}/files"

        for page in range(1, MAX_FILE_PAGES + 1):
            response = await self._call(
                "GET", path, token, params={"per_page": FILES_PER_PAGE, "page": page}
            )
            batch = response.json()
            files.extend(ChangedFile.from_github_response(item) for item in batch)
            if len(batch) < FILES_PER_PAGE:
                break

        logger.debug("Listed %d changed files for %s", len(files), path)
        return files

    # ------------------------------------------------------------------
    # Review writes
    # ------------------------------------------------------------------

    async def create_comment(
        self,
        owner: str,
        repo: str,
        issue_number: int,
        body: str,
        token: str,
    ) -> Dict[str, Any]:
        """Post an issue comment on a pull request.

        Returns:
            GitHub's representation of the new comment (``id`` included).
        """
        response = await self._call(
            "POST",
            f"/repos/{owner}/{repo}/issues/{issue_number}/comments",
            token,
            body={"body": body},
        )
        comment = response.json()
        logger.info(
            "Posted comment on %s/%s#%s",
            owner,
            repo,
            issue_number,
            extra={"comment_id": comment.get("id"), "body_length": len(body)},
        )
        return comment

    async def update_pull_request(
        self,
        owner: str,
        repo: str,
        pr_number: int,
        token: str,
        title: Optional[str] = None,
        body: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Patch the title and/or description; omitted fields stay as they are."""
        changes = {
            field: value
            for field, value in (("title", title), ("body", body))
            if value is not None
        }
        response = await self._call(
            "PATCH",
            f"/repos/{owner}/{repo}/pulls/{pr_number}",
            token,
            body=changes,
        )
        logger.info(
            "Updated %s/%s#%s",
            owner,
            repo,
            pr_number,
            extra={"fields": sorted(changes)},
        )
        return response.json()
