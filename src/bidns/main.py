from __future__ import annotations

import argparse
import logging
import signal
import threading
from typing import Callable, List, Optional, Protocol

from .cache import ResolutionCache
from .config.config_parser import BidnsConfig, load_config
from .config.logging_config import init_logging
from .router import ResolutionRouter
from .routes import RouteMatcher
from .servers.server import make_resolver
from .servers.tcp_server import TCPListener
from .servers.udp_server import UDPListener
from .upstream import UpstreamResolver

logger = logging.getLogger("bidns.main")


class Listener(Protocol):
    def serve_forever(self) -> None: ...

    def stop(self) -> None: ...


class ListenerSupervisor:
    """Keeps one listener running, rebinding it after socket errors.

    Inputs:
      - name: Label used in log messages ('udp', 'tcp').
      - factory: Zero-argument callable that binds and returns a new listener.
      - initial_delay: Seconds to wait before the first restart attempt.
      - max_delay: Upper bound for the doubling restart delay.

    Outputs:
      - ListenerSupervisor; start() binds synchronously (bind errors raise to
        the caller) and then serves from a daemon thread.

    Notes:
      - Only OSError from the serve loop or from a rebind triggers a restart.
        The router and cache are untouched by restarts.
    """

    def __init__(
        self,
        name: str,
        factory: Callable[[], Listener],
        *,
        initial_delay: float = 0.5,
        max_delay: float = 30.0,
    ) -> None:
        self.name = name
        self.factory = factory
        self.initial_delay = float(initial_delay)
        self.max_delay = float(max_delay)
        self.restarts = 0
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._listener: Optional[Listener] = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._listener = self.factory()
        self._thread = threading.Thread(
            target=self._run, name=f"bidns-{self.name}", daemon=True
        )
        self._thread.start()

    @property
    def listener(self) -> Optional[Listener]:
        """The currently bound listener, or None while rebinding."""
        with self._lock:
            return self._listener

    def _run(self) -> None:
        delay = self.initial_delay
        listener = self._listener
        while not self._stop.is_set():
            if listener is None:
                try:
                    listener = self.factory()
                except OSError as e:
                    logger.warning(
                        "%s: rebind failed: %s; retrying in %.1fs", self.name, e, delay
                    )
                    self._stop.wait(delay)
                    delay = min(delay * 2, self.max_delay)
                    continue
                with self._lock:
                    if self._stop.is_set():
                        listener.stop()
                        return
                    self._listener = listener
                self.restarts += 1
                logger.info("%s: listener restarted", self.name)

            try:
                listener.serve_forever()
                delay = self.initial_delay
            except OSError as e:
                logger.warning("%s: listener error: %s; restarting", self.name, e)
                listener.stop()
            with self._lock:
                self._listener = None
            listener = None
            if not self._stop.is_set():
                self._stop.wait(delay)
                delay = min(delay * 2, self.max_delay)

    def stop(self, timeout: float = 5.0) -> None:
        """Stop serving and wait for the supervisor thread to exit."""
        self._stop.set()
        with self._lock:
            listener = self._listener
        if listener is not None:
            listener.stop()
        if self._thread is not None:
            self._thread.join(timeout)


def build_router(config: BidnsConfig, matcher: RouteMatcher) -> ResolutionRouter:
    """Brief: Wire cache, upstream resolvers and matcher into a router.

    Inputs:
      - config: BidnsConfig.
      - matcher: Loaded RouteMatcher.

    Outputs:
      - ResolutionRouter.
    """
    ups = config.upstreams
    local = UpstreamResolver(
        ups.local.host,
        ups.local.port,
        transport=ups.local.transport,
        timeout_ms=config.timeout_ms,
        name="local",
    )
    remote = UpstreamResolver(
        ups.remote.host,
        ups.remote.port,
        transport=ups.remote.transport,
        timeout_ms=config.timeout_ms,
        name="remote",
    )
    cache = ResolutionCache(max_entries=config.cache.max_entries)
    logger.info("Upstreams: local=%r remote=%r", local, remote)
    return ResolutionRouter(
        matcher, cache, local, remote, default_ttl=config.cache.default_ttl
    )


def build_supervisors(
    config: BidnsConfig, router: ResolutionRouter
) -> List[ListenerSupervisor]:
    """Create supervisors for every enabled listener (not yet started)."""
    supervisors: List[ListenerSupervisor] = []
    if config.listen.udp.enabled:
        udp_host, udp_port = config.listen.endpoint("udp")
        udp_resolver = make_resolver(router, udp=True)
        supervisors.append(
            ListenerSupervisor(
                "udp", lambda: UDPListener(udp_host, udp_port, udp_resolver)
            )
        )
    if config.listen.tcp.enabled:
        tcp_host, tcp_port = config.listen.endpoint("tcp")
        tcp_resolver = make_resolver(router)
        supervisors.append(
            ListenerSupervisor(
                "tcp", lambda: TCPListener(tcp_host, tcp_port, tcp_resolver)
            )
        )
    return supervisors


def log_status(router: ResolutionRouter) -> None:
    """Purge expired cache entries and log cache size plus outcome counters."""
    removed = router.cache.purge_expired()
    logger.info(
        "Status: %d cached answers (%d expired purged); outcomes %s",
        len(router.cache),
        removed,
        router.stats(),
    )


def _install_signal_handlers(
    shutdown_event: threading.Event, router: ResolutionRouter
) -> None:
    def _request_shutdown(signum, _frame):
        logger.info("Received %s; shutting down", signal.Signals(signum).name)
        shutdown_event.set()

    def _sigusr1_handler(_signum, _frame):
        log_status(router)

    handlers = {
        "SIGTERM": _request_shutdown,
        "SIGINT": _request_shutdown,
        "SIGHUP": _request_shutdown,
        "SIGUSR1": _sigusr1_handler,
    }
    for sig_name, handler in handlers.items():
        sig = getattr(signal, sig_name, None)
        if sig is None:
            continue
        try:
            signal.signal(sig, handler)
        except ValueError:
            # Not running in the main thread (e.g. embedded in tests).
            logger.debug("Could not install %s handler", sig_name)


def main(
    argv: List[str] | None = None,
    *,
    shutdown_event: Optional[threading.Event] = None,
) -> int:
    """
    Main entry point for the DNS router.
    Parses arguments, loads configuration, builds the router and runs listeners.

    Args:
        argv: Command-line arguments.
        shutdown_event: Optional Event that stops the server when set (a new
            one is created when omitted; signals set it).

    Returns:
        An exit code.

    Example use:
        CLI:
            PYTHONPATH=src python -m bidns.main --config config.yaml
    """
    parser = argparse.ArgumentParser(
        description="Split-horizon DNS router for domestic and foreign names"
    )
    parser.add_argument("--config", default="config.yaml", help="Path to YAML config")
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except (OSError, ValueError) as exc:
        print(str(exc))
        return 1

    init_logging(config.logging)
    logger.info("Loaded config from %s", args.config)

    try:
        matcher = RouteMatcher.from_file(
            config.route_table.path,
            always_check_overflow=config.route_table.always_check_overflow,
        )
    except OSError as exc:
        logger.error("Failed to load route table %s: %s", config.route_table.path, exc)
        return 1

    router = build_router(config, matcher)
    supervisors = build_supervisors(config, router)
    if not supervisors:
        logger.error("No listeners enabled; nothing to do")
        return 1

    started: List[ListenerSupervisor] = []
    try:
        for sup in supervisors:
            sup.start()
            started.append(sup)
    except OSError as exc:
        logger.error("Failed to start listener: %s", exc)
        for sup in started:
            sup.stop()
        return 1

    shutdown_event = shutdown_event or threading.Event()
    _install_signal_handlers(shutdown_event, router)

    try:
        # Wake periodically so signal handlers run promptly in the main thread.
        while not shutdown_event.wait(1.0):
            pass
    except KeyboardInterrupt:
        logger.info("Interrupted; shutting down")
    finally:
        for sup in started:
            sup.stop()
        log_status(router)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
