"""Copy of the on disk registry data into the seaweedfs object store.

A reader task streams a tar archive out of a pod over an exec session and
feeds it into a bounded pipe. A worker thread parses the archive from that
pipe and uploads every regular file as an object. Whichever side fails first
aborts the other.
"""
import asyncio
import io
import json
import posixpath
import queue
import tarfile
import threading
from typing import IO, AsyncIterator, Callable, Optional
import boto3
from botocore.config import Config
from botocore.exceptions import ClientError
from kubernetes_asyncio.client import (
    CoreV1Api,
    V1Container,
    V1ObjectMeta,
    V1PersistentVolumeClaimVolumeSource,
    V1Pod,
    V1PodSpec,
    V1Volume,
    V1VolumeMount,
)
from kubernetes_asyncio.stream import WsApiClient
from ecoperator.common.models.labels import Labels
from ecoperator.resources.artifacts import DEFAULT_UTILS_IMAGE
from ecoperator.resources.base import BaseResource
from ecoperator.resources.registry import REGISTRY_NAMESPACE, RegistryStorage
from ecoperator.utils.errors import MigrationError
from ecoperator.utils.objects import cached_property

REGISTRY_DATA_DIR = "/var/lib/registry"
REGISTRY_PVC = "registry"
READER_POD = "registry-data-migration"
READER_CONTAINER = "migrate-registry-data"

S3_BUCKET = "registry"
S3_ROOT_DIRECTORY = "registry"
S3_REGION = "us-east-1"

STDOUT_CHANNEL = 1
STDERR_CHANNEL = 2
ERROR_CHANNEL = 3

_EOF = object()
_POLL = 0.1

Uploader = Callable[[str, IO[bytes]], None]


class ProgressReporter:
    """Percent complete by entry count, reported only when it grows."""

    def __init__(self, total: int, callback: Callable[[int], None]) -> None:
        self.total = total
        self.callback = callback
        self.count = 0
        self.last = -1

    def _report(self, percent: int) -> None:
        if percent > self.last:
            self.last = percent
            self.callback(percent)

    def advance(self) -> None:
        self.count += 1
        if self.total > 0:
            self._report(min((self.count * 100) // self.total, 100))

    def complete(self) -> None:
        self._report(100)


class ChunkPipe(io.RawIOBase):
    """Bounded byte pipe between an async producer and a blocking consumer.

    ``feed`` blocks once ``maxsize`` chunks are buffered. ``abort`` wakes both
    sides; the consumer then raises and further feeds fail.
    """

    def __init__(self, maxsize: int) -> None:
        super().__init__()
        self._queue: "queue.Queue" = queue.Queue(maxsize=maxsize)
        self._buffer = b""
        self._done = threading.Event()
        self.error: Optional[BaseException] = None

    def readable(self) -> bool:
        return True

    def _put(self, item) -> None:
        while not self._done.is_set():
            try:
                self._queue.put(item, timeout=_POLL)
                return
            except queue.Full:
                continue
        if self.error is not None:
            raise MigrationError(f"registry data pipe aborted: {self.error}")

    def feed(self, chunk: bytes) -> None:
        if chunk:
            self._put(chunk)

    def finish(self) -> None:
        self._put(_EOF)

    def abort(self, error: BaseException) -> None:
        if self.error is None:
            self.error = error
        self._done.set()

    def drain(self) -> None:
        """Stop consuming; remaining feeds are discarded."""
        self._done.set()

    def readinto(self, b) -> int:
        while not self._buffer:
            if self.error is not None:
                raise MigrationError(f"registry data pipe aborted: {self.error}")
            try:
                item = self._queue.get(timeout=_POLL)
            except queue.Empty:
                continue
            if item is _EOF:
                return 0
            self._buffer = item
        size = min(len(b), len(self._buffer))
        b[:size] = self._buffer[:size]
        self._buffer = self._buffer[size:]
        return size


class MemberReader:
    """Read-only view of a tar member; uploads must treat it as non seekable."""

    def __init__(self, fileobj: IO[bytes]) -> None:
        self._fileobj = fileobj

    def read(self, size: int = -1) -> bytes:
        return self._fileobj.read(size)


def object_key(member_name: str) -> str:
    name = posixpath.normpath(member_name).lstrip("/")
    return posixpath.join(S3_ROOT_DIRECTORY, name)


def upload_archive(pipe: ChunkPipe, uploader: Uploader, progress: ProgressReporter) -> None:
    """Upload every regular file of the tar stream read from ``pipe``."""
    with tarfile.open(fileobj=pipe, mode="r|") as archive:
        for member in archive:
            if not member.isfile():
                continue
            fileobj = archive.extractfile(member)
            uploader(object_key(member.name), MemberReader(fileobj))
            progress.advance()


async def copy_registry_data(
    chunks: AsyncIterator[bytes],
    uploader: Uploader,
    total: int,
    on_progress: Callable[[int], None],
    maxsize: int = 16,
) -> None:
    """Stream a tar archive of registry data into the object store.

    ``on_progress`` receives strictly increasing percentages, ending at 100.
    The first error of either side is raised as a MigrationError.
    """
    pipe = ChunkPipe(maxsize)
    progress = ProgressReporter(total, on_progress)

    async def read() -> None:
        try:
            async for chunk in chunks:
                await asyncio.to_thread(pipe.feed, chunk)
            await asyncio.to_thread(pipe.finish)
        except Exception as e:
            pipe.abort(e)
            raise

    async def write() -> None:
        try:
            await asyncio.to_thread(upload_archive, pipe, uploader, progress)
        except Exception as e:
            pipe.abort(e)
            raise
        finally:
            pipe.drain()

    tasks = [asyncio.ensure_future(read()), asyncio.ensure_future(write())]
    try:
        await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    if pipe.error is not None:
        if isinstance(pipe.error, MigrationError):
            raise pipe.error
        raise MigrationError(f"failed to copy registry data: {pipe.error}") from pipe.error
    progress.complete()


def exec_failure(payload: bytes) -> Optional[str]:
    """Decode the status sent on the exec error channel, None on success."""
    try:
        status = json.loads(payload)
    except ValueError:
        return payload.decode(errors="replace")
    if status.get("status") == "Success":
        return None
    return status.get("message") or "command failed"


class RegistryMigrator(BaseResource):
    """Moves the registry data of a single node registry into seaweedfs."""

    @cached_property
    def storage(self) -> RegistryStorage:
        return RegistryStorage()

    def s3_client(self, endpoint: str, access_key: str, secret_key: str):
        return boto3.client(
            "s3",
            endpoint_url=f"http://{endpoint}",
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=S3_REGION,
            config=Config(s3={"addressing_style": "path"}),
        )

    def ensure_bucket(self, client) -> None:
        try:
            client.create_bucket(Bucket=S3_BUCKET)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code not in ("BucketAlreadyOwnedByYou", "BucketAlreadyExists"):
                raise

    def reader_pod(self) -> V1Pod:
        return V1Pod(
            metadata=V1ObjectMeta(
                name=READER_POD,
                namespace=REGISTRY_NAMESPACE,
                labels=Labels.for_component("registry").include("app", READER_POD).as_dict(),
            ),
            spec=V1PodSpec(
                restart_policy="Never",
                containers=[
                    V1Container(
                        name=READER_CONTAINER,
                        image=self.conf.utils_image or DEFAULT_UTILS_IMAGE,
                        command=["sleep", "infinity"],
                        volume_mounts=[
                            V1VolumeMount(
                                name="registry-data",
                                mount_path=REGISTRY_DATA_DIR,
                                read_only=True,
                            )
                        ],
                    )
                ],
                volumes=[
                    V1Volume(
                        name="registry-data",
                        persistent_volume_claim=V1PersistentVolumeClaimVolumeSource(
                            claim_name=REGISTRY_PVC
                        ),
                    )
                ],
            ),
        )

    async def start_reader(self) -> None:
        await self.create_pod(REGISTRY_NAMESPACE, self.reader_pod())
        for _ in range(self.conf.ha_poll_steps):
            pod = await self.fetch_pod(READER_POD, REGISTRY_NAMESPACE)
            phase = pod.status.phase if pod is not None and pod.status is not None else None
            if phase == "Running":
                return
            if phase in ("Failed", "Succeeded"):
                raise MigrationError(f"registry data reader pod ended in phase {phase}")
            await asyncio.sleep(self.conf.ha_poll_interval_seconds)
        raise MigrationError("timed out waiting for the registry data reader pod")

    async def exec_stream(self, command) -> AsyncIterator[bytes]:
        """Run ``command`` in the reader pod and yield its stdout."""
        async with WsApiClient() as ws_api:
            v1_ws = CoreV1Api(api_client=ws_api)
            resp = await v1_ws.connect_get_namespaced_pod_exec(
                READER_POD,
                REGISTRY_NAMESPACE,
                container=READER_CONTAINER,
                command=command,
                stderr=True,
                stdin=False,
                stdout=True,
                tty=False,
                _preload_content=False,
            )
            async with resp as ws:
                async for msg in ws:
                    data = msg.data
                    if isinstance(data, str):
                        data = data.encode()
                    if not data:
                        continue
                    channel, payload = data[0], data[1:]
                    if channel == STDOUT_CHANNEL:
                        yield payload
                    elif channel == STDERR_CHANNEL:
                        self.logger.debug(f"registry reader: {payload.decode(errors='replace')}")
                    elif channel == ERROR_CHANNEL:
                        failure = exec_failure(payload)
                        if failure:
                            raise MigrationError(f"{' '.join(command)}: {failure}")

    async def count_files(self) -> int:
        output = b""
        async for chunk in self.exec_stream(
            ["sh", "-c", f"find {REGISTRY_DATA_DIR} -type f | wc -l"]
        ):
            output += chunk
        try:
            return int(output.decode().strip())
        except ValueError as e:
            raise MigrationError(f"unexpected file count output {output!r}") from e

    async def migrate(self, endpoint: str, on_progress: Callable[[int], None]) -> None:
        """Copy every registry file to the ``registry`` bucket at ``endpoint``."""
        access_key, secret_key = await self.storage.s3_credentials()
        client = self.s3_client(endpoint, access_key, secret_key)
        await asyncio.to_thread(self.ensure_bucket, client)

        def upload(key: str, fileobj: IO[bytes]) -> None:
            client.upload_fileobj(fileobj, S3_BUCKET, key)

        await self.start_reader()
        try:
            total = await self.count_files()
            self.logger.info(f"Copying {total} registry files to {endpoint}")
            await copy_registry_data(
                self.exec_stream(["tar", "-c", "-C", REGISTRY_DATA_DIR, "."]),
                upload,
                total,
                on_progress,
                maxsize=self.conf.migration_pipe_maxsize,
            )
        finally:
            await self.delete_pod(READER_POD, REGISTRY_NAMESPACE)
