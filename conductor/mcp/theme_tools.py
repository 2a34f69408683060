"""Theme tools."""

from typing import Any

from conductor.core.errors import ConductorError
from conductor.core.themes import normalize_color
from conductor.mcp.base import ToolBase
from conductor.mcp.results import arg_bool, arg_int, arg_list, arg_str, correlation_id_from, mcp_success, with_receipt

DELETE_MODES = ("archive", "delete")


class ThemeToolsMixin(ToolBase):
    async def _tool_get_themes(self, args: dict[str, Any]) -> dict[str, Any]:
        themes = await self.themes.list_themes(include_archived=arg_bool(args, "include_archived"))
        counts = await self.themes.task_counts()
        items = []
        lines = ["Themes:"]
        for theme in themes:
            keywords = await self.themes.keywords_for(theme.id)
            count = counts.get(theme.id, 0)
            suffix = " [archived]" if theme.is_archived else ""
            keyword_text = f"; keywords: {', '.join(keywords)}" if keywords else ""
            lines.append(f"- {theme.name} ({theme.color}){suffix}: {count} open task(s){keyword_text} (id: {theme.id})")
            items.append({
                "id": theme.id,
                "name": theme.name,
                "color": theme.color,
                "objective": theme.objective,
                "is_loose": theme.is_loose,
                "is_archived": theme.is_archived,
                "open_task_count": count,
                "keywords": keywords,
            })
        if not items:
            return mcp_success("No themes.", {"themes": []})
        return mcp_success("\n".join(lines), {"themes": items})

    async def _tool_create_theme(self, args: dict[str, Any]) -> dict[str, Any]:
        source = "mcp:create_theme"
        correlation_id = correlation_id_from(args)
        name = arg_str(args, "name")
        if not name:
            raise await self._fail("name is required.", "theme", source, correlation_id)
        if await self.themes.find_by_name(name, include_archived=True) is not None:
            raise await self._fail(f"Theme '{name}' already exists.", "theme", source, correlation_id)
        try:
            theme = await self.themes.create_theme(
                name,
                color=normalize_color(arg_str(args, "color")),
                objective=arg_str(args, "description"),
                keywords=arg_list(args, "keywords"),
                default_start_time=arg_str(args, "default_start_time"),
                default_duration_minutes=arg_int(args, "default_duration_minutes", 60),
            )
        except ConductorError as e:
            raise await self._fail(str(e), "theme", source, correlation_id)
        receipt = await self.op_log.record(
            "created", "theme", source=source,
            message=f"Created theme '{theme.name}'", entity_id=theme.id,
            payload={"color": theme.color}, correlation_id=correlation_id,
        )
        return mcp_success(receipt.message + ".", with_receipt(receipt, {"theme_id": theme.id}))

    async def _tool_delete_theme(self, args: dict[str, Any]) -> dict[str, Any]:
        source = "mcp:delete_theme"
        correlation_id = correlation_id_from(args)
        theme_id = arg_str(args, "theme_id")
        theme_name = arg_str(args, "theme_name")
        mode = (arg_str(args, "mode") or "archive").lower()
        if mode not in DELETE_MODES:
            raise await self._fail(f"Invalid mode '{mode}'. Use archive or delete.", "theme", source, correlation_id)

        if theme_id:
            theme = await self.themes.get_theme(theme_id)
        elif theme_name:
            theme = await self.themes.find_by_name(theme_name, include_archived=True)
        else:
            raise await self._fail("theme_id or theme_name is required.", "theme", source, correlation_id)
        if theme is None:
            raise await self._fail(
                f"Theme not found: {theme_id or theme_name}", "theme", source, correlation_id, entity_id=theme_id
            )

        try:
            if mode == "archive":
                await self.themes.archive_theme(theme.id)
                operation, message = "updated", f"Archived theme '{theme.name}'"
            else:
                moved = await self.themes.delete_theme(theme.id, force=arg_bool(args, "force"))
                operation, message = "deleted", f"Deleted theme '{theme.name}'"
                if moved:
                    message += f"; {moved} task(s) moved to Loose"
        except ConductorError as e:
            raise await self._fail(str(e), "theme", source, correlation_id, entity_id=theme.id)

        receipt = await self.op_log.record(
            operation, "theme", source=source, message=message, entity_id=theme.id,
            payload={"mode": mode}, correlation_id=correlation_id,
        )
        return mcp_success(message + ".", with_receipt(receipt, {"theme_id": theme.id, "mode": mode}))
