"""Planning tools: draft, apply and publish theme blocks."""

from typing import Any, Optional

from conductor.core.errors import ConductorError
from conductor.core.planning import BlockWindowError, PlanningDraft
from conductor.core.timeutil import parse_date
from conductor.mcp.base import ToolBase
from conductor.mcp.results import arg_bool, arg_list, arg_str, correlation_id_from, mcp_error, mcp_success, with_receipt

OVERRIDE_MISSING = "Both start_time and end_time are required when overriding block time."


def _draft_text(draft: PlanningDraft) -> str:
    if not draft.proposals:
        return f"{draft.day.isoformat()}: nothing to schedule (draft {draft.id})."
    lines = [f"{draft.day.isoformat()} (draft {draft.id}):"]
    for p in draft.proposals:
        lines.append(
            f"- {p.start_time:%H:%M}-{p.end_time:%H:%M} {p.theme_name} ({len(p.task_ids)} task(s))"
        )
    return "\n".join(lines)


class PlanningToolsMixin(ToolBase):
    def _planning_disabled(self) -> Optional[dict[str, Any]]:
        if not self.settings.planning_enabled:
            return mcp_error("Planning is disabled in settings.")
        return None

    async def _tool_plan_day(self, args: dict[str, Any]) -> dict[str, Any]:
        disabled = self._planning_disabled()
        if disabled:
            return disabled
        raw = arg_str(args, "date")
        day = parse_date(raw) if raw else self.now().date()
        if day is None:
            return mcp_error("Invalid date. Use YYYY-MM-DD.")
        draft = await self.planning.plan_day(day)
        return mcp_success(_draft_text(draft), {"draft_id": draft.id, "draft": draft.as_dict()})

    async def _tool_plan_week(self, args: dict[str, Any]) -> dict[str, Any]:
        disabled = self._planning_disabled()
        if disabled:
            return disabled
        raw = arg_str(args, "start_date")
        start = parse_date(raw) if raw else self.now().date()
        if start is None:
            return mcp_error("Invalid start_date. Use YYYY-MM-DD.")
        drafts = await self.planning.plan_week(start)
        return mcp_success(
            "\n\n".join(_draft_text(d) for d in drafts),
            {"draft_ids": [d.id for d in drafts], "drafts": [d.as_dict() for d in drafts]},
        )

    async def _tool_apply_plan_blocks(self, args: dict[str, Any]) -> dict[str, Any]:
        disabled = self._planning_disabled()
        if disabled:
            return disabled
        source = "mcp:apply_plan_blocks"
        correlation_id = correlation_id_from(args)
        draft_id = arg_str(args, "draft_id")
        if not draft_id:
            raise await self._fail("draft_id is required.", "planning_draft", source, correlation_id)
        status = (arg_str(args, "status") or "planned").lower()
        if status not in ("draft", "planned"):
            raise await self._fail(
                f"Invalid status '{status}'. Use draft or planned.", "planning_draft", source, correlation_id,
                entity_id=draft_id,
            )

        start_raw = arg_str(args, "start_time")
        end_raw = arg_str(args, "end_time")
        window = None
        if start_raw or end_raw:
            try:
                window = self.planning.parse_block_window(
                    start_raw, end_raw, verb="apply override", missing_message=OVERRIDE_MISSING
                )
            except BlockWindowError as e:
                raise await self._fail(str(e), "planning_draft", source, correlation_id, entity_id=draft_id)

        draft = self.planning.get_draft(draft_id)
        if draft is None:
            raise await self._fail(
                f"No draft found for id: {draft_id}", "planning_draft", source, correlation_id, entity_id=draft_id
            )

        overrides = {}
        if window is not None:
            index = await self._override_target(draft, arg_str(args, "theme_name"), source, correlation_id)
            overrides[index] = window

        blocks = await self.planning.apply_draft(draft_id, status=status, overrides=overrides)
        if blocks is None:
            raise await self._fail(
                f"No draft found for id: {draft_id}", "planning_draft", source, correlation_id, entity_id=draft_id
            )
        block_ids = [b.id for b in blocks]
        receipt = await self.op_log.record(
            "created", "theme_block", source=source,
            message=f"Applied {len(blocks)} block(s) from draft {draft_id} as {status}",
            entity_id=block_ids[0] if block_ids else None,
            payload={"draft_id": draft_id, "block_count": len(blocks)},
            correlation_id=correlation_id,
        )
        extra: dict[str, Any] = {"draft_id": draft_id, "block_ids": block_ids}
        text = receipt.message + "."

        if arg_bool(args, "publish") and block_ids:
            result = await self.planning.publish_theme_blocks(block_ids)
            receipt = await self.op_log.record(
                "published", "theme_block", source=source, status=result.status,
                message=f"Published {len(result.published_block_ids)} of {len(block_ids)} block(s)",
                payload={"failed": len(result.failed_block_ids)},
                correlation_id=correlation_id,
            )
            extra["published_ids"] = result.published_block_ids
            extra["failed_publish_ids"] = result.failed_block_ids
            text += f"\n- published: {len(result.published_block_ids)}\n- failed: {len(result.failed_block_ids)}"

        return mcp_success(text, with_receipt(receipt, extra))

    async def _override_target(
        self, draft: PlanningDraft, theme_name: Optional[str], source: str, correlation_id: str
    ) -> int:
        if theme_name:
            for index, proposal in enumerate(draft.proposals):
                if proposal.theme_name.lower() == theme_name.lower():
                    return index
            raise await self._fail(
                f"No proposal for theme '{theme_name}' in draft {draft.id}.",
                "planning_draft", source, correlation_id, entity_id=draft.id,
            )
        if len(draft.proposals) == 1:
            return 0
        if not draft.proposals:
            raise await self._fail("Draft has no proposals.", "planning_draft", source, correlation_id, entity_id=draft.id)
        raise await self._fail(
            "Unable to resolve override target. Provide theme_name when a draft has multiple proposals.",
            "planning_draft", source, correlation_id, entity_id=draft.id,
        )

    async def _tool_publish_plan_blocks(self, args: dict[str, Any]) -> dict[str, Any]:
        disabled = self._planning_disabled()
        if disabled:
            return disabled
        source = "mcp:publish_plan_blocks"
        correlation_id = correlation_id_from(args)
        block_ids = arg_list(args, "block_ids") or None
        result = await self.planning.publish_theme_blocks(block_ids)
        total = len(result.published_block_ids) + len(result.failed_block_ids)
        if total == 0:
            return mcp_success("No planned blocks to publish.", {"published_ids": [], "failed_ids": []})
        receipt = await self.op_log.record(
            "published", "theme_block", source=source, status=result.status,
            message=f"Published {len(result.published_block_ids)} of {total} block(s)",
            payload={"failed": len(result.failed_block_ids)},
            correlation_id=correlation_id,
        )
        text = (
            "Publish results:\n"
            f"- published: {len(result.published_block_ids)}\n"
            f"- failed: {len(result.failed_block_ids)}"
        )
        return mcp_success(
            text,
            with_receipt(receipt, {
                "published_ids": result.published_block_ids,
                "failed_ids": result.failed_block_ids,
            }),
        )

    async def _tool_create_theme_block(self, args: dict[str, Any]) -> dict[str, Any]:
        disabled = self._planning_disabled()
        if disabled:
            return disabled
        source = "mcp:create_theme_block"
        correlation_id = correlation_id_from(args)
        theme_id = arg_str(args, "theme_id")
        if not theme_id:
            raise await self._fail("theme_id is required.", "theme_block", source, correlation_id)
        try:
            start, end = self.planning.parse_block_window(
                arg_str(args, "start_time"), arg_str(args, "end_time"), verb="create block"
            )
        except BlockWindowError as e:
            raise await self._fail(str(e), "theme_block", source, correlation_id)

        theme = await self.themes.get_theme(theme_id)
        if theme is None:
            raise await self._fail(
                f"Theme not found for id: {theme_id}", "theme_block", source, correlation_id, entity_id=theme_id
            )
        try:
            block = await self.planning.create_block(theme.id, start, end, status="planned")
        except ConductorError as e:
            raise await self._fail(str(e), "theme_block", source, correlation_id)
        receipt = await self.op_log.record(
            "created", "theme_block", source=source,
            message=f"Created {theme.name} block {start:%Y-%m-%d %H:%M}-{end:%H:%M}", entity_id=block.id,
            payload={"theme_id": theme.id}, correlation_id=correlation_id,
        )
        text = receipt.message + "."
        block_status = "planned"

        if arg_bool(args, "publish"):
            result = await self.planning.publish_theme_blocks([block.id])
            if result.failed_block_ids:
                receipt = await self.op_log.record(
                    "published", "theme_block", source=source, status="partial_success",
                    message="Block created but calendar publish failed; block remains planned",
                    entity_id=block.id, correlation_id=correlation_id,
                )
                text += " Calendar publish failed; the block remains planned."
            else:
                block_status = "published"
                receipt = await self.op_log.record(
                    "published", "theme_block", source=source,
                    message=f"Published {theme.name} block to calendar", entity_id=block.id,
                    correlation_id=correlation_id,
                )
                text += " Published to calendar."

        return mcp_success(text, with_receipt(receipt, {"block_id": block.id, "block_status": block_status}))
