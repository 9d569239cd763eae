"""Watch mode process lifetime.

Wires the registry, synchronizer and router of one project together, runs
the initial pass over the root manifest, then consumes the watch
subscription next to the compiler child process.  On SIGINT/SIGTERM the
subscription is stopped first; in-flight handlers finish, then the compiler
is terminated.
"""

from __future__ import annotations

import signal
from typing import TYPE_CHECKING

import anyio
from loguru import logger

from tsrf.engine.compiler import CompilerProcess
from tsrf.engine.paths import WorkspacePaths
from tsrf.engine.registry import WorkspaceRegistry
from tsrf.engine.router import EventRouter
from tsrf.engine.synchronizer import ConfigSynchronizer

if TYPE_CHECKING:
    from tsrf.engine.settings import SyncOptions


def build_router(options: SyncOptions) -> EventRouter:
    registry = WorkspaceRegistry()
    paths = WorkspacePaths(options.root)
    synchronizer = ConfigSynchronizer(registry, paths, options)
    return EventRouter(registry, paths, synchronizer, options)


async def serve(options: SyncOptions) -> None:
    """Run watch mode until a termination signal arrives."""
    router = build_router(options)
    stop_event = anyio.Event()
    compiler = CompilerProcess(options.compiler_command, options.root) if options.spawn_compiler else None

    logger.info("Watching {}", router.paths.root)
    async with anyio.create_task_group() as tg:
        tg.start_soon(_wait_for_signal, stop_event)

        await router.start()
        if compiler is not None:
            await tg.start(compiler.run)

        await router.watch(stop_event)

        if compiler is not None:
            await compiler.stop()
        tg.cancel_scope.cancel()

    logger.info("Stopped")


async def _wait_for_signal(stop_event: anyio.Event) -> None:
    with anyio.open_signal_receiver(signal.SIGINT, signal.SIGTERM) as signals:
        async for signum in signals:
            logger.info("Received {}, shutting down", signal.Signals(signum).name)
            stop_event.set()
            return
