"""Adapter over the Docker Engine API used by the pull tracker.

The tracker only needs ``pull`` returning a stream of raw JSON-lines chunks
that can be closed from another thread. ``DockerEngine`` provides it on top of
the Docker SDK's low-level client, together with the small image listing and
removal helpers used by the images endpoints.
"""

from __future__ import annotations

import contextlib
import logging
import socket
import threading
from typing import TYPE_CHECKING, Any, Protocol

import docker
from docker import auth
from docker.errors import APIError, DockerException, ImageNotFound, create_api_error_from_http_exception
from docker.utils import parse_repository_tag
from requests.exceptions import HTTPError, RequestException

from core.exceptions import EngineError, ImageConflictError, ImageNotFoundError

if TYPE_CHECKING:
    from collections.abc import Iterator

    from requests import Response

logger = logging.getLogger(__name__)


class PullStream(Protocol):
    """An open pull stream yielding raw chunks from the Engine."""

    def __iter__(self) -> Iterator[bytes]: ...

    def close(self) -> None:
        """Stop the stream, waking up a reader blocked on it; may raise if the transport is broken."""
        ...


class Engine(Protocol):
    """The part of the Docker Engine the pull tracker depends on."""

    def pull(self, reference: str) -> PullStream:
        """Open a pull stream for ``reference``.

        Raises
        ------
        EngineError
            If the pull cannot be started (bad reference, auth, daemon down).

        """
        ...


def _engine_error(exc: Exception) -> EngineError:
    """Translate a Docker SDK or transport exception into an ``EngineError``."""
    if isinstance(exc, ImageNotFound):
        return ImageNotFoundError(exc.explanation or str(exc))
    if isinstance(exc, APIError):
        message = exc.explanation or str(exc)
        if exc.status_code == 409:  # noqa: PLR2004
            return ImageConflictError(message)
        return EngineError(message)
    return EngineError(str(exc) or exc.__class__.__name__)


def _raise_for_status(response: Response) -> None:
    """Raise the Docker SDK's ``APIError`` for a failed Engine response."""
    try:
        response.raise_for_status()
    except HTTPError as exc:
        response.close()
        create_api_error_from_http_exception(exc)


def response_socket(response: Response) -> socket.socket | None:
    """Return the socket a streamed Engine response reads from, if reachable.

    Follows the same path as ``APIClient._get_raw_response_socket`` in the
    Docker SDK. Transports that do not expose a socket (SSH, named pipes)
    return ``None``.
    """
    try:
        raw = response.raw._fp.fp.raw  # noqa: SLF001
    except AttributeError:
        return None
    sock = getattr(raw, "_sock", raw)
    return sock if hasattr(sock, "shutdown") else None


class DockerPullStream:
    """Iterate the chunks of a streamed ``/images/create`` response.

    ``close`` may be called from another thread while the consumer is blocked
    waiting for the next chunk: shutting the socket down ends that read, after
    which the iteration stops quietly instead of raising.

    Parameters
    ----------
    response : Response
        The streamed HTTP response of the pull request.
    sock : socket.socket | None
        The socket under ``response``; when ``None`` closing only closes the
        response.

    """

    def __init__(self, response: Response, sock: socket.socket | None = None) -> None:
        self._response = response
        self._socket = sock
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        """Whether ``close`` was called."""
        return self._closed.is_set()

    def __iter__(self) -> Iterator[bytes]:
        try:
            yield from self._response.iter_content(chunk_size=None)
        except Exception as exc:
            if self.closed:
                logger.debug("Pull stream stopped after close: %s", exc)
                return
            if isinstance(exc, (DockerException, RequestException)):
                raise _engine_error(exc) from exc
            raise

    def close(self) -> None:
        """Abort the pull by shutting down its connection, then release the response."""
        self._closed.set()
        if self._socket is not None:
            with contextlib.suppress(OSError):
                self._socket.shutdown(socket.SHUT_RDWR)
        self._response.close()


class DockerEngine:
    """Docker Engine client with lazy connection.

    The SDK client is created on first use so that the application starts even
    when the daemon is unreachable; each request then fails with an
    ``EngineError`` instead.

    Parameters
    ----------
    base_url : str | None
        Engine URL (e.g. ``unix:///var/run/docker.sock``). When empty the
        ``DOCKER_HOST`` environment is used.
    timeout : int
        Timeout in seconds for Engine API calls (default: ``60``).

    """

    def __init__(self, base_url: str | None = None, timeout: int = 60) -> None:
        self._base_url = base_url or None
        self._timeout = timeout
        self._client: docker.DockerClient | None = None
        self._lock = threading.Lock()

    @property
    def client(self) -> docker.DockerClient:
        """Return the SDK client, connecting on first access."""
        with self._lock:
            if self._client is None:
                try:
                    if self._base_url:
                        self._client = docker.DockerClient(base_url=self._base_url, timeout=self._timeout)
                    else:
                        self._client = docker.from_env(timeout=self._timeout)
                except DockerException as exc:
                    raise _engine_error(exc) from exc
                logger.info("Connected to Docker Engine at %s", self._client.api.base_url)
            return self._client

    def pull(self, reference: str) -> DockerPullStream:
        """Start pulling ``reference`` and return its progress stream.

        Parameters
        ----------
        reference : str
            Image reference, ``name[:tag]`` or ``name@digest``; the tag
            defaults to ``latest``.

        Returns
        -------
        DockerPullStream
            The open stream of JSON-lines chunks.

        Raises
        ------
        EngineError
            If the Engine rejects the pull before streaming begins.

        """
        api = self.client.api
        # Same request as ``APIClient.pull``, keeping the response so the
        # stream can be aborted from another thread.
        repository, tag = parse_repository_tag(reference)
        try:
            registry, _ = auth.resolve_repository_name(repository)
            headers = {}
            header = auth.get_config_header(api, registry)
            if header:
                headers["X-Registry-Auth"] = header
            response = api.post(
                f"{api.base_url}/v{api.api_version}/images/create",
                params={"fromImage": repository, "tag": tag or "latest"},
                headers=headers,
                stream=True,
                timeout=None,
            )
            _raise_for_status(response)
        except (DockerException, RequestException) as exc:
            raise _engine_error(exc) from exc
        return DockerPullStream(response, response_socket(response))

    def list_images(self) -> list[dict[str, Any]]:
        """Return all local images as plain dictionaries."""
        try:
            images = self.client.api.images(all=True)
        except (DockerException, RequestException) as exc:
            raise _engine_error(exc) from exc

        return [
            {
                "id": image["Id"],
                "tags": image.get("RepoTags") or ["<none>:<none>"],
                "size": image.get("Size", 0),
                "created": image.get("Created"),
                "parent_id": image.get("ParentId") or None,
                "repo_digests": image.get("RepoDigests") or [],
            }
            for image in images
        ]

    def ping(self) -> bool:
        """Return whether the Engine answers ``/_ping``."""
        try:
            return bool(self.client.ping())
        except (EngineError, DockerException, RequestException) as exc:
            logger.debug("Docker Engine ping failed: %s", exc)
            return False

    def remove_image(self, image_id: str, *, force: bool = False) -> None:
        """Remove an image by id or reference.

        Raises
        ------
        ImageNotFoundError
            If the image does not exist.
        ImageConflictError
            If the image is used by a container.

        """
        try:
            self.client.api.remove_image(image_id, force=force)
        except (DockerException, RequestException) as exc:
            raise _engine_error(exc) from exc
        logger.info("Removed image %s", image_id)

    def close(self) -> None:
        """Close the SDK client if it was opened."""
        with self._lock:
            if self._client is not None:
                self._client.close()
                self._client = None
