"""Development server for Kindling.

Serves a built site over HTTP and, in dev mode, rebuilds it when sources
change:
- Directory requests resolve to the directory's index.html.
- Missing paths get 404.html with a 404 status when present, otherwise the
  site's root index.html.
- ``..`` sequences are removed from request paths before lookup.
- Source changes trigger rebuilds; changes during a build coalesce into one
  follow-up build.

Key classes:
- StaticHandler: HTTP request handler implementing the fallbacks above.
- RebuildCoordinator: Serializes rebuilds with a single pending flag.
- DevServer: Initial build, file watcher and HTTP server together.
"""

from __future__ import annotations

import functools
import os
import re
import threading
from collections.abc import Callable
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from . import log
from .build import BuildOptions, build_site
from .config import load_config

DEFAULT_PORT = 4173
_TRAVERSAL_RE = re.compile(r"\.\.+")


class StaticHandler(SimpleHTTPRequestHandler):
    """Serves files from the output directory with site-style fallbacks."""

    def end_headers(self):
        self.send_header("Cache-Control", "no-cache, no-store, must-revalidate")
        super().end_headers()

    def list_directory(self, path):  # pragma: no cover - send_head never lists
        self.send_error(404, "File not found")
        return None

    def resolve_file(self) -> tuple[Path, int]:
        """Map the request path to a file and response status."""
        request_path = self.path.split("?", 1)[0].split("#", 1)[0]
        request_path = _TRAVERSAL_RE.sub("", request_path)
        root = Path(self.directory)
        target = Path(self.translate_path(request_path))
        if target.is_dir():
            target = target / "index.html"
        if target.is_file():
            return target, 200
        not_found = root / "404.html"
        if not_found.is_file():
            return not_found, 404
        return root / "index.html", 200

    def send_head(self):
        path, status = self.resolve_file()
        try:
            f = open(path, "rb")
        except OSError:
            self.send_error(404, "File not found")
            return None
        try:
            fs = os.fstat(f.fileno())
            self.send_response(status)
            self.send_header("Content-type", self.guess_type(str(path)))
            self.send_header("Content-Length", str(fs.st_size))
            self.end_headers()
        except Exception:
            f.close()
            raise
        return f


def serve(output_dir: Path, port: int = DEFAULT_PORT, host: str = "") -> ThreadingHTTPServer:
    """Create an HTTP server for a built site.

    The caller runs ``serve_forever()``; binding port 0 picks a free port.
    """
    handler = functools.partial(StaticHandler, directory=str(output_dir))
    httpd = ThreadingHTTPServer((host, port), handler)
    log.success(f"Serving {output_dir} at http://localhost:{httpd.server_address[1]}")
    return httpd


class RebuildCoordinator:
    """Runs builds one at a time.

    A trigger that arrives while a build is running sets a single pending
    flag instead of starting a second build. When the running build
    finishes, one more build runs if the flag was set. Triggers may come from
    any thread.

    Attributes:
        build: Callable performing one build.
        builds: Number of builds run so far.
    """

    def __init__(self, build: Callable[[], object]):
        self.build = build
        self.builds = 0
        self._lock = threading.Lock()
        self._building = False
        self._pending = False

    @property
    def building(self) -> bool:
        return self._building

    @property
    def pending(self) -> bool:
        return self._pending

    def trigger(self) -> bool:
        """Run a build now, or mark one pending if a build is running.

        Returns:
            True if this call ran the build(s), False if it only deferred one.
        """
        with self._lock:
            if self._building:
                self._pending = True
                return False
            self._building = True
        while True:
            try:
                self.build()
            except Exception as exc:
                log.error(f"Build failed: {exc}")
            with self._lock:
                self.builds += 1
                if not self._pending:
                    self._building = False
                    return True
                self._pending = False


class _ChangeHandler(FileSystemEventHandler):
    def __init__(self, server: DevServer):
        super().__init__()
        self.server = server

    def on_any_event(self, event):
        if event.is_directory:
            return
        path = Path(os.fsdecode(event.src_path)).resolve()
        try:
            path.relative_to(self.server.output_dir)
            return
        except ValueError:
            pass
        try:
            shown = path.relative_to(self.server.project_root).as_posix()
        except ValueError:
            shown = str(path)
        log.info(f"{event.event_type}: {shown}")
        # Builds run off the observer thread so later events can be coalesced.
        threading.Thread(target=self.server.coordinator.trigger, daemon=True).start()


class DevServer:
    """Development server: watch sources, rebuild, serve the output.

    Attributes:
        project_root: Root directory of the project.
        output_dir: Directory served over HTTP.
        port: HTTP port.
        coordinator: Serializes rebuilds.
    """

    def __init__(self, project_root: Path, port: int | None = None):
        self.project_root = Path(project_root).resolve()
        self.config = load_config(self.project_root)
        self.output_dir = (self.project_root / self.config.out_dir).resolve()
        self.port = int(port or self.config.port or DEFAULT_PORT)
        self.coordinator = RebuildCoordinator(self.rebuild)
        self._observer: Observer | None = None
        self._httpd: ThreadingHTTPServer | None = None

    def rebuild(self) -> None:
        build_site(
            self.project_root,
            BuildOptions(dev_mode=True, skip_image_compression=True),
        )

    def watch_paths(self) -> list[Path]:
        candidates = [
            self.project_root / self.config.src_dir,
            self.project_root / self.config.public_dir,
        ]
        return [p for p in candidates if p.is_dir()]

    def start(self) -> None:  # pragma: no cover - integration path
        self.coordinator.trigger()
        self._start_watcher()
        self._httpd = serve(self.output_dir, self.port)
        try:
            self._httpd.serve_forever()
        except KeyboardInterrupt:
            pass
        finally:
            self.stop()

    def stop(self) -> None:
        if self._observer:
            self._observer.stop()
            self._observer.join()
            self._observer = None
        if self._httpd:
            self._httpd.server_close()
            self._httpd = None

    def _start_watcher(self) -> None:
        handler = _ChangeHandler(self)
        observer = Observer()
        for watch_path in self.watch_paths():
            observer.schedule(handler, str(watch_path), recursive=True)
        observer.start()
        self._observer = observer
