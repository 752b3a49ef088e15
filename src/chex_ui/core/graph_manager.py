"""
Graph Manager
=============

This module provides lazy, memoized ownership of the inference graph the
saliency generator reads from. The graph is created on first use, reused for
every later request and released explicitly with :meth:`GraphManager.close`.

Classes
-------
GraphManager
    Owns one inference graph for the lifetime of a pipeline

Notes
-----
A manager is created and owned by :class:`chex_ui.core.pipeline.AnalysisPipeline`;
there is no module-level instance. After ``close()`` the next ``get()``
loads the graph again.

See Also
--------
chex_ui.models.graph_util : Low-level graph loading functions
chex_ui.core.saliency : Consumer of the managed graph
"""

import logging

from chex_ui.errors import InferenceError
from chex_ui.models.graph import InferenceGraph
from chex_ui.models.graph_util import load_graph

logger = logging.getLogger(__name__)


class GraphManager:
    """
    Lazy owner of one inference graph.

    Parameters
    ----------
    source : str, Path, InferenceGraph or callable, optional
        Registered graph name, file or URL passed to
        :func:`~chex_ui.models.graph_util.load_graph`; an already built graph;
        or a zero-argument factory returning one.
    device : str, default="cpu"
        Device for PyTorch graphs

    Examples
    --------
    >>> from chex_ui.core.graph_manager import GraphManager
    >>> with GraphManager("chexnet_imagenet") as gm:
    ...     graph = gm.get()
    ...     graph is gm.get()
    True
    """

    def __init__(self, source=None, device: str = "cpu"):
        self.source = source
        self.device = device
        self._graph: InferenceGraph | None = None

    @property
    def configured(self) -> bool:
        return self.source is not None

    @property
    def loaded(self) -> bool:
        return self._graph is not None

    def get(self) -> InferenceGraph:
        """
        Return the graph, creating it on first call.

        Raises
        ------
        InferenceError
            If no graph source is configured or loading fails
        """
        if self._graph is None:
            if self.source is None:
                raise InferenceError("No inference graph configured")
            if isinstance(self.source, InferenceGraph):
                graph = self.source
            elif callable(self.source):
                graph = self.source()
            else:
                graph = load_graph(self.source, device=self.device)
            if not isinstance(graph, InferenceGraph):
                raise InferenceError(
                    f"Graph source produced {type(graph).__name__}, not an InferenceGraph"
                )
            self._graph = graph
            logger.info("Inference graph ready: %s", type(graph).__name__)
        return self._graph

    def close(self) -> None:
        """Release the graph; safe to call more than once."""
        if self._graph is not None:
            self._graph.close()
            logger.debug("Inference graph released")
            self._graph = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
