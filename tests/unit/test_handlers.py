"""Unit tests for the kopf handlers."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, Mock, patch
import pytest
import ecoperator.handlers.highavailability as ha_handlers
import ecoperator.handlers.installation as installation_handlers
from ecoperator.common.models.labels import Labels
from ecoperator.utils.errors import HAPreconditionError, ReconcileError

NAME = "20240101000000"


@pytest.fixture(autouse=True)
def clean_queue():
    yield
    asyncio.run(installation_handlers.on_delete(name=NAME))
    installation_handlers.last_reconcile.clear()


class TestReconciliationQueue:
    def test_requests_are_deduplicated(self):
        async def request_twice():
            await installation_handlers.request_reconciliation(NAME)
            await installation_handlers.request_reconciliation(NAME)

        asyncio.run(request_twice())
        assert NAME in installation_handlers.names_in_queue
        assert installation_handlers.reconciliation_queue[NAME].qsize() == 1

    def test_timer_processes_one_request(self):
        logger = Mock()
        with patch.object(installation_handlers, "reconcile", new=AsyncMock()) as reconcile:

            async def run():
                await installation_handlers.request_reconciliation(NAME)
                await installation_handlers.process_reconciliation_requests(name=NAME, logger=logger, stopped=False)

            asyncio.run(run())
        reconcile.assert_awaited_once_with(NAME, logger, trigger_source="queue")
        assert NAME not in installation_handlers.names_in_queue

    def test_timer_with_empty_queue_does_nothing(self):
        with patch.object(installation_handlers, "reconcile", new=AsyncMock()) as reconcile:
            asyncio.run(
                installation_handlers.process_reconciliation_requests(name=NAME, logger=Mock(), stopped=False)
            )
        reconcile.assert_not_awaited()


class TestReconcile:
    def test_errors_are_logged_and_time_recorded(self):
        logger = Mock()
        controller = Mock(reconcile=AsyncMock(side_effect=ReconcileError("cluster config k0s not found")))
        with patch.object(installation_handlers, "InstallationController", return_value=controller):
            asyncio.run(installation_handlers.reconcile(NAME, logger))
        logger.error.assert_called_once()
        assert "time" in installation_handlers.last_reconcile


class TestEnableHAHandler:
    def run_handler(self, enable):
        annotations_patch = MagicMock()
        with patch.object(ha_handlers, "InstallationStore") as store_cls, patch.object(
            ha_handlers, "HighAvailabilityCoordinator"
        ) as coordinator_cls, patch.object(
            ha_handlers, "request_reconciliation", new=AsyncMock()
        ), patch.object(ha_handlers.kopf, "event") as event:
            store_cls.return_value.fetch = AsyncMock(return_value=Mock(name="record"))
            coordinator_cls.return_value.enable = enable
            asyncio.run(
                ha_handlers.on_enable_ha_requested(
                    name=NAME,
                    body={"metadata": {"name": NAME}},
                    annotations={Labels.ENABLE_HA_ANNOTATION: "true"},
                    patch=annotations_patch,
                    logger=Mock(),
                )
            )
        return event, annotations_patch

    def test_success_posts_event_and_removes_annotation(self):
        event, annotations_patch = self.run_handler(AsyncMock())
        assert event.call_args.kwargs["reason"] == "HighAvailabilityEnabled"
        annotations_patch.metadata.annotations.__setitem__.assert_called_once_with(
            Labels.ENABLE_HA_ANNOTATION, None
        )

    def test_refusal_posts_warning_and_removes_annotation(self):
        event, annotations_patch = self.run_handler(AsyncMock(side_effect=HAPreconditionError("already enabled")))
        assert event.call_args.kwargs["type"] == "Warning"
        assert event.call_args.kwargs["reason"] == "HighAvailabilityFailed"
        assert "already enabled" in event.call_args.kwargs["message"]
        annotations_patch.metadata.annotations.__setitem__.assert_called_once_with(
            Labels.ENABLE_HA_ANNOTATION, None
        )
