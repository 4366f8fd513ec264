"""Tool type resolution and the strategy registry."""

from collections.abc import Callable

from tool_export.lib.exporter.base import ExportStrategy, ToolSnapshot, ToolType
from tool_export.lib.exporter.errors import UnsupportedToolTypeError

# Substring checked against tool_id when the manifest does not name a type.
# Order matters: "form" is tested before "workflow" and "theme".
_TOOL_ID_PATTERNS: list[tuple[str, ToolType]] = [
    ("form", ToolType.FORMS),
    ("workflow", ToolType.WORKFLOWS),
    ("theme", ToolType.THEMES),
]


def resolve_tool_type(tool: ToolSnapshot) -> ToolType:
    """Determine which strategy family exports a tool.

    Prefers ``manifest.config.toolType``; falls back to substring matching
    on the tool id.

    Args:
        tool: Snapshot of the tool being exported.

    Returns:
        The resolved tool type.

    Raises:
        UnsupportedToolTypeError: If neither source yields a known type.
    """
    declared = tool.config.get("toolType")
    if isinstance(declared, str):
        try:
            return ToolType(declared.strip().lower())
        except ValueError:
            msg = f"Unsupported toolType '{declared}' in manifest of tool {tool.tool_id}"
            raise UnsupportedToolTypeError(msg, [msg]) from None

    for pattern, tool_type in _TOOL_ID_PATTERNS:
        if pattern in tool.tool_id:
            return tool_type

    msg = (
        f"Cannot determine tool type for tool_id: {tool.tool_id}. "
        "Add 'toolType' to manifest.config or use a recognized tool_id pattern."
    )
    raise UnsupportedToolTypeError(msg, [msg])


class StrategyRegistry:
    """Maps tool types to strategy factories.

    Constructed explicitly and handed to the orchestrator, so tests can
    register doubles without touching module state.
    """

    def __init__(self) -> None:
        self._factories: dict[ToolType, Callable[[], ExportStrategy]] = {}

    def register(self, tool_type: ToolType, factory: Callable[[], ExportStrategy]) -> None:
        """Register (or replace) the strategy factory for a tool type."""
        self._factories[ToolType(tool_type)] = factory

    def create(self, tool_type: ToolType | str) -> ExportStrategy:
        """Instantiate the strategy registered for ``tool_type``.

        Raises:
            UnsupportedToolTypeError: If no strategy is registered.
        """
        try:
            factory = self._factories[ToolType(tool_type)]
        except (KeyError, ValueError):
            msg = f"No export strategy registered for tool type '{tool_type}'. Supported: {self.supported_types()}"
            raise UnsupportedToolTypeError(msg, [msg]) from None
        return factory()

    def for_tool(self, tool: ToolSnapshot) -> ExportStrategy:
        """Resolve the tool's type and instantiate its strategy."""
        return self.create(resolve_tool_type(tool))

    def supported_types(self) -> list[str]:
        """Return the registered tool type names, sorted."""
        return sorted(t.value for t in self._factories)

    def __contains__(self, tool_type: object) -> bool:
        try:
            return ToolType(tool_type) in self._factories  # type: ignore[arg-type]
        except ValueError:
            return False


def default_registry() -> StrategyRegistry:
    """Build a registry with the bundled forms, workflows and themes strategies."""
    from tool_export.lib.exporter.strategies.forms import FormsExportStrategy
    from tool_export.lib.exporter.strategies.themes import ThemesExportStrategy
    from tool_export.lib.exporter.strategies.workflows import WorkflowsExportStrategy

    registry = StrategyRegistry()
    registry.register(ToolType.FORMS, FormsExportStrategy)
    registry.register(ToolType.WORKFLOWS, WorkflowsExportStrategy)
    registry.register(ToolType.THEMES, ThemesExportStrategy)
    return registry
