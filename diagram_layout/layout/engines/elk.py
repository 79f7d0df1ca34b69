"""ELK layout engine via elkjs.

Provides layered layout for diagram editing. Uses a persistent Node.js
worker for performance.

Protocol:
    - Persistent Node.js worker (not per-call spawn)
    - stdin/stdout line-delimited JSON with request IDs
    - ELK-native coordinates (top-left origin, children relative to parent)
    - Pinned coordinates are sent as initial x/y hints
"""

import asyncio
import atexit
import glob
import json
import logging
import os
import subprocess
import threading
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

import networkx as nx

from diagram_layout.config.settings import get_setting
from diagram_layout.layout.engines.base import LayoutEngine, LayoutServiceError
from diagram_layout.models.layout_metadata import LayoutMetadata, NodePosition

logger = logging.getLogger(__name__)

# Defaults merged under every request's options
DEFAULT_ELK_OPTIONS = {
    "elk.algorithm": "layered",
    "elk.direction": "DOWN",
    "elk.spacing.nodeNode": "50",
    "elk.layered.spacing.nodeNodeBetweenLayers": "70",
}


class ELKWorkerManager:
    """Manages a persistent ELK worker process.

    Requests are serialized by an I/O lock: one line written, one line read,
    so concurrent callers never read each other's responses. Starting and
    stopping the process takes a separate lifecycle lock, so ``shutdown()``
    never waits on a pending read. Killing the worker ends that read.
    """

    def __init__(
        self,
        node_path: str,
        worker_script: Path,
        timeout: int = 30,
    ):
        """Initialize worker manager.

        Args:
            node_path: Path to Node.js executable
            worker_script: Path to elk_worker.js
            timeout: Timeout in seconds for layout requests
        """
        self._node_path = node_path
        self._worker_script = worker_script
        self._timeout = timeout
        self._process: Optional[subprocess.Popen] = None
        self._lock = threading.RLock()
        self._io_lock = threading.Lock()

    def _ensure_worker(self) -> subprocess.Popen:
        """Start the worker process if not already running and return it."""
        with self._lock:
            if self.is_running:
                return self._process

            logger.debug("Starting ELK worker process")
            self._process = subprocess.Popen(
                [self._node_path, str(self._worker_script)],
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                text=True,
                bufsize=1,  # Line buffered
                cwd=self._worker_script.parent,
            )
            logger.info(f"ELK worker started (PID: {self._process.pid})")

            if self._process.poll() is not None:
                raise LayoutServiceError("ELK worker failed to start")
            return self._process

    def _send_and_receive(self, request_line: str) -> Dict[str, Any]:
        with self._io_lock:
            process = self._ensure_worker()
            try:
                process.stdin.write(request_line)
                process.stdin.flush()
            except (BrokenPipeError, OSError) as e:
                logger.warning(f"ELK worker pipe broken: {e}, restarting")
                self._discard(process)
                process = self._ensure_worker()
                process.stdin.write(request_line)
                process.stdin.flush()

            # Returns '' once shutdown() has killed the worker
            response_line = process.stdout.readline()
            if not response_line:
                raise LayoutServiceError("ELK worker closed unexpectedly")

            return json.loads(response_line)

    async def request(self, graph: Dict[str, Any]) -> Dict[str, Any]:
        """Send layout request and wait for response.

        Args:
            graph: ELK graph JSON

        Returns:
            ELK layout result

        Raises:
            LayoutServiceError: If layout fails or times out
        """
        request_id = str(uuid.uuid4())
        request_line = json.dumps({"id": request_id, "graph": graph}) + "\n"

        # Blocking pipe I/O runs in the default executor
        loop = asyncio.get_running_loop()
        try:
            response = await asyncio.wait_for(
                loop.run_in_executor(None, self._send_and_receive, request_line),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"ELK request {request_id} timed out after {self._timeout}s")
            self.shutdown()
            raise LayoutServiceError(f"ELK layout timed out after {self._timeout}s")

        if "error" in response:
            raise LayoutServiceError(f"ELK layout failed: {response['error']}")

        if response.get("id") != request_id:
            raise LayoutServiceError(
                f"Response ID mismatch: expected {request_id}, got {response.get('id')}"
            )

        return response.get("result", {})

    def shutdown(self) -> None:
        """Shutdown the worker process."""
        with self._lock:
            process, self._process = self._process, None
        if process is None:
            return
        logger.debug("Shutting down ELK worker")
        self._stop(process)

    def _discard(self, process: subprocess.Popen) -> None:
        with self._lock:
            if self._process is process:
                self._process = None
        self._stop(process)

    def _stop(self, process: subprocess.Popen) -> None:
        try:
            process.kill()
            process.wait(timeout=5)
            process.stdin.close()
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning(f"Error shutting down ELK worker: {e}")

    @property
    def is_running(self) -> bool:
        """Check if worker is currently running."""
        with self._lock:
            return self._process is not None and self._process.poll() is None


# Global worker manager instance (shared across ELKLayoutEngine instances)
_worker_manager: Optional[ELKWorkerManager] = None
_worker_lock = threading.Lock()


def _cleanup_worker():
    """Cleanup worker on process exit."""
    if _worker_manager is not None:
        _worker_manager.shutdown()


atexit.register(_cleanup_worker)


class ELKLayoutEngine(LayoutEngine):
    """ELK layout engine via elkjs Node.js subprocess.

    The worker is shared across all ELKLayoutEngine instances.
    """

    def __init__(
        self,
        node_path: Optional[str] = None,
        worker_script: Optional[Path] = None,
        timeout: Optional[int] = None,
    ):
        """Initialize ELK layout engine.

        Args:
            node_path: Path to Node.js executable (auto-detect if None)
            worker_script: Path to elk_worker.js (use bundled if None)
            timeout: Timeout in seconds (ELK_TIMEOUT setting if None)
        """
        self._node_path = node_path or self._find_node()
        self._worker_script = worker_script or self._default_worker_script()
        self._timeout = timeout if timeout is not None else get_setting("elk_timeout")

    @property
    def name(self) -> str:
        return "elk"

    @property
    def supports_position_hints(self) -> bool:
        return True

    def _find_node(self) -> str:
        """Find Node.js executable, falling back to plain 'node'."""
        for path in ["node", "/usr/bin/node", "/usr/local/bin/node"]:
            try:
                result = subprocess.run(
                    [path, "--version"],
                    capture_output=True,
                    text=True,
                    timeout=5,
                )
                if result.returncode == 0:
                    return path
            except (subprocess.SubprocessError, FileNotFoundError):
                continue

        nvm_paths = glob.glob(os.path.expanduser("~/.nvm/versions/node/*/bin/node"))
        if nvm_paths:
            return sorted(nvm_paths)[-1]  # Latest version

        # Resolved lazily; is_available() reports False and layout() raises
        logger.warning("Node.js not found. ELK layout will be unavailable.")
        return "node"

    def _default_worker_script(self) -> Path:
        """Get path to bundled elk_worker.js."""
        return Path(__file__).parent.parent / "elk_worker.js"

    def _get_worker(self) -> ELKWorkerManager:
        """Get or create the shared worker manager."""
        global _worker_manager
        with _worker_lock:
            if _worker_manager is None:
                _worker_manager = ELKWorkerManager(
                    self._node_path,
                    self._worker_script,
                    self._timeout,
                )
            return _worker_manager

    async def is_available(self) -> bool:
        """Check if Node.js and the elkjs module are available."""
        check_script = "try { require('elkjs'); console.log('ok'); } catch(e) { console.log('missing'); }"
        try:
            result = subprocess.run(
                [self._node_path, "-e", check_script],
                capture_output=True,
                text=True,
                timeout=5,
                cwd=self._worker_script.parent,
            )
        except (subprocess.SubprocessError, OSError) as e:
            logger.warning(f"ELK availability check failed: {e}")
            return False
        return result.stdout.strip() == "ok"

    async def layout(
        self,
        graph: nx.DiGraph,
        options: Optional[Dict[str, Any]] = None,
    ) -> LayoutMetadata:
        """Compute layout using ELK.

        Args:
            graph: NetworkX DiGraph with node/edge data
            options: ELK layout options (merged over DEFAULT_ELK_OPTIONS)

        Returns:
            LayoutMetadata with positions
        """
        layout_options = {**DEFAULT_ELK_OPTIONS, **(options or {})}
        elk_graph = self.graph_to_elk(graph, layout_options)

        try:
            elk_result = await self._get_worker().request(elk_graph)
        except (OSError, ValueError) as e:
            raise LayoutServiceError(f"ELK worker I/O failed: {e}") from e

        return self.elk_to_layout(elk_result, layout_options)

    def graph_to_elk(
        self, graph: nx.DiGraph, options: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Convert NetworkX graph to ELK JSON format.

        Nodes whose ``parent`` attribute names another node in the graph become
        that node's ELK children; the parent gets its own padding.

        Args:
            graph: NetworkX DiGraph
            options: ELK layout options

        Returns:
            ELK JSON graph structure
        """
        padding = get_setting("group_padding")
        elk_nodes: Dict[str, Dict[str, Any]] = {}

        for node_id, attrs in graph.nodes(data=True):
            elk_node: Dict[str, Any] = {
                "id": str(node_id),
                "width": attrs.get("width", get_setting("default_node_width")),
                "height": attrs.get("height", get_setting("default_node_height")),
            }
            if attrs.get("x") is not None and attrs.get("y") is not None:
                elk_node["x"] = attrs["x"]
                elk_node["y"] = attrs["y"]
            elk_nodes[str(node_id)] = elk_node

        roots: List[Dict[str, Any]] = []
        nested = False
        for node_id, attrs in graph.nodes(data=True):
            elk_node = elk_nodes[str(node_id)]
            parent = attrs.get("parent")
            if parent is not None and str(parent) in elk_nodes and str(parent) != str(node_id):
                parent_node = elk_nodes[str(parent)]
                parent_node.setdefault("children", []).append(elk_node)
                parent_node["layoutOptions"] = {
                    "elk.padding": f"[top={padding},left={padding},bottom={padding},right={padding}]",
                }
                nested = True
            else:
                roots.append(elk_node)

        elk_edges = []
        for i, (source, target, attrs) in enumerate(graph.edges(data=True)):
            elk_edges.append({
                "id": attrs.get("id", f"e{i}"),
                "sources": [str(source)],
                "targets": [str(target)],
            })

        layout_options = dict(options)
        if nested:
            # Edges may cross group boundaries
            layout_options.setdefault("elk.hierarchyHandling", "INCLUDE_CHILDREN")

        return {
            "id": "root",
            "layoutOptions": layout_options,
            "children": roots,
            "edges": elk_edges,
        }

    def elk_to_layout(
        self, elk_result: Dict[str, Any], options: Dict[str, Any]
    ) -> LayoutMetadata:
        """Convert ELK result to LayoutMetadata.

        Child positions stay relative to their parent's origin.
        """
        positions: Dict[str, NodePosition] = {}

        def collect(children: List[Dict[str, Any]]) -> None:
            for node in children:
                positions[node["id"]] = NodePosition(
                    x=node.get("x", 0),
                    y=node.get("y", 0),
                )
                collect(node.get("children", []))

        collect(elk_result.get("children", []))

        if not positions:
            raise LayoutServiceError("ELK returned no positioned nodes")

        return LayoutMetadata(
            algorithm="elk",
            layout_options=options,
            positions=positions,
        )

    def shutdown(self) -> None:
        """Shutdown the ELK worker (for cleanup)."""
        global _worker_manager
        with _worker_lock:
            if _worker_manager is not None:
                _worker_manager.shutdown()
                _worker_manager = None
