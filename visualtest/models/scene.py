"""Minimal scene graph used by visual tests.

A ``Scene`` is a tree of ``Node`` objects, each carrying a list of
``Component`` instances.  The harness only needs three things from a
scene: locating components by type (to find captures and cameras),
ticking logic components once per frame, and routing capture
notifications to the test that owns the scene.

Typical usage::

    scene = Scene("Shapes")
    node = scene.create_child("CameraNode")
    camera = node.add_component(Camera(clear_color=(0, 0, 0, 255)))
    capture = node.add_component(Capture(name="shot"))
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, TypeVar

from visualtest.models.events import CaptureListener, SceneUpdateListener

if TYPE_CHECKING:
    from visualtest.core.capture import Capture
    from visualtest.engine.interface import RendererInterface

logger = logging.getLogger(__name__)

ComponentT = TypeVar("ComponentT", bound="Component")


class Component:
    """Base class for anything attached to a ``Node``.

    Subclasses that need per-frame logic override ``update``.
    """

    def __init__(self) -> None:
        self.node: Node | None = None
        self.enabled: bool = True

    @property
    def scene(self) -> Scene | None:
        """The scene this component belongs to, if attached."""
        if self.node is None:
            return None
        return self.node.scene

    def get_component(self, component_type: type[ComponentT]) -> ComponentT | None:
        """Return the first sibling component of *component_type*."""
        if self.node is None:
            return None
        return self.node.get_component(component_type)

    def update(self, time_step: float) -> None:
        """Per-frame logic hook.  Default does nothing."""


class Camera(Component):
    """Viewpoint used when rendering a capture.

    Args:
        clear_color: Colour the render target is cleared to before
            drawables are rasterised, as a ``(b, g, r, a)`` tuple of
            8-bit values.
    """

    def __init__(self, clear_color: tuple[int, int, int, int] = (0, 0, 0, 255)) -> None:
        super().__init__()
        self.clear_color = clear_color


class Node:
    """A named element of the scene tree."""

    def __init__(self, name: str = "") -> None:
        self.name = name
        self.enabled: bool = True
        self.parent: Node | None = None
        self.children: list[Node] = []
        self.components: list[Component] = []

    @property
    def scene(self) -> Scene | None:
        """Walk up to the root and return it if it is a ``Scene``."""
        node: Node = self
        while node.parent is not None:
            node = node.parent
        return node if isinstance(node, Scene) else None

    # -- Tree construction ---------------------------------------------------

    def create_child(self, name: str = "") -> Node:
        """Create, attach, and return a new child node."""
        child = Node(name)
        child.parent = self
        self.children.append(child)
        return child

    def get_child(self, name: str, recursive: bool = False) -> Node | None:
        """Find a child node by name.

        Args:
            name: Node name to look for.
            recursive: Search the whole subtree, depth first.

        Returns:
            The first matching node, or ``None``.
        """
        for child in self.children:
            if child.name == name:
                return child
            if recursive:
                found = child.get_child(name, recursive=True)
                if found is not None:
                    return found
        return None

    def add_component(self, component: ComponentT) -> ComponentT:
        """Attach *component* to this node and return it."""
        if component.node is not None:
            raise ValueError("Component is already attached to a node")
        component.node = self
        self.components.append(component)
        return component

    def get_component(self, component_type: type[ComponentT]) -> ComponentT | None:
        """Return the first component of *component_type* on this node."""
        for component in self.components:
            if isinstance(component, component_type):
                return component
        return None

    def get_components(
        self,
        component_type: type[ComponentT],
        recursive: bool = False,
    ) -> list[ComponentT]:
        """Return components of *component_type*, optionally from the subtree."""
        found = [c for c in self.components if isinstance(c, component_type)]
        if recursive:
            for child in self.children:
                found.extend(child.get_components(component_type, recursive=True))
        return found

    def set_enabled_recursive(self, enabled: bool) -> None:
        """Enable or disable this node and all of its descendants."""
        self.enabled = enabled
        for child in self.children:
            child.set_enabled_recursive(enabled)

    def iter_enabled_components(self) -> list[Component]:
        """Return enabled components of enabled nodes in the subtree."""
        if not self.enabled:
            return []
        active = [c for c in self.components if c.enabled]
        for child in self.children:
            active.extend(child.iter_enabled_components())
        return active


class Scene(Node):
    """Root of a scene tree.

    Besides the node hierarchy the scene carries the renderer it is
    bound to while attached to an engine, and the observers interested
    in its capture and update notifications.
    """

    def __init__(self, name: str = "Scene") -> None:
        super().__init__(name)
        self.renderer: RendererInterface | None = None
        self._capture_listeners: list[CaptureListener] = []
        self._update_listeners: list[SceneUpdateListener] = []

    # -- Ticking ---------------------------------------------------------------

    def update(self, time_step: float) -> None:
        """Tick every enabled component, then notify update listeners."""
        for component in self.iter_enabled_components():
            component.update(time_step)
        for listener in list(self._update_listeners):
            listener(time_step)

    # -- Subscriptions ---------------------------------------------------------

    def add_update_listener(self, listener: SceneUpdateListener) -> None:
        self._update_listeners.append(listener)

    def remove_update_listener(self, listener: SceneUpdateListener) -> None:
        if listener in self._update_listeners:
            self._update_listeners.remove(listener)

    def add_capture_listener(self, listener: CaptureListener) -> None:
        self._capture_listeners.append(listener)

    def remove_capture_listener(self, listener: CaptureListener) -> None:
        if listener in self._capture_listeners:
            self._capture_listeners.remove(listener)

    # -- Capture notifications -------------------------------------------------

    def notify_capture_failed(self, capture: Capture, reason: str) -> None:
        for listener in list(self._capture_listeners):
            listener.on_capture_failed(capture, reason)

    def notify_capture_image_ready(self, capture: Capture) -> None:
        for listener in list(self._capture_listeners):
            listener.on_capture_image_ready(capture)

    def notify_capture_complete(self, capture: Capture) -> None:
        for listener in list(self._capture_listeners):
            listener.on_capture_complete(capture)
