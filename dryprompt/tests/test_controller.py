"""Tests for the application controller state machine and its timers."""

import asyncio
import pytest
from unittest.mock import AsyncMock, Mock


class FakePermissions:
    """Permission provider whose grant is driven by the test."""

    def __init__(self, granted=True):
        self.granted = granted
        self.callback = None
        self.unsubscribe = Mock()
        self.requested = 0

    def has_permission(self):
        return self.granted

    def request_permission(self):
        self.requested += 1
        return self.granted

    def monitor_changes(self, callback, interval=2.0):
        self.callback = callback
        return self.unsubscribe


def make_result(suggestions=None):
    from dryprompt.analysis.pipeline import PipelineResult
    return PipelineResult(suggestions=suggestions or [], errors=[])


def make_controller(has_credential=True, granted=True, entries=0, pipeline_run=None,
                    pipeline=None, log_store=None, **scheduler):
    from dryprompt.app.controller import ApplicationController
    from dryprompt.common.config import SchedulerConfig

    secret_store = Mock()
    secret_store.has_credential.return_value = has_credential
    coordinator = Mock()
    coordinator.start = AsyncMock()
    coordinator.stop = AsyncMock()
    coordinator.is_running = False
    coordinator.status.return_value = {"capture_mode": "fallback"}
    if pipeline is None:
        pipeline = Mock()
        pipeline.run = pipeline_run or AsyncMock(return_value=make_result())
    if log_store is None:
        log_store = Mock()
        log_store.count.return_value = entries
    notifier = Mock()

    settings = dict(
        analysis_interval=3600.0,
        initial_check_delay=3600.0,
        min_entries_for_analysis=5,
        error_recovery_delay=3600.0,
        permission_poll_interval=0.01,
    )
    settings.update(scheduler)
    controller = ApplicationController(
        secret_store,
        FakePermissions(granted),
        coordinator,
        pipeline,
        log_store,
        notifier,
        SchedulerConfig(**settings),
    )
    return controller


class TestBootstrap:
    @pytest.mark.asyncio
    async def test_missing_credential(self):
        from dryprompt.app.controller import AppState
        controller = make_controller(has_credential=False)

        await controller.initialize()

        assert controller.state == AppState.CONFIGURATION_NEEDED
        controller._coordinator.start.assert_not_awaited()
        await controller.cleanup()

    @pytest.mark.asyncio
    async def test_ready_goes_idle_and_starts_monitoring(self):
        from dryprompt.app.controller import AppState
        controller = make_controller()

        await controller.initialize()

        assert controller.state == AppState.IDLE
        controller._coordinator.start.assert_awaited_once()
        controller._notifier.on_monitoring_started.assert_called_once_with("fallback")
        assert controller.detailed_status()["next_analysis_time"] is not None
        await controller.cleanup()

    @pytest.mark.asyncio
    async def test_permission_granted_later(self):
        from dryprompt.app.controller import AppState
        controller = make_controller(granted=False)
        permissions = controller._permissions

        await controller.initialize()
        assert controller.state == AppState.PERMISSION_NEEDED
        assert permissions.callback is not None

        permissions.granted = True
        await permissions.callback(True)
        await permissions.callback(True)

        assert controller.state == AppState.IDLE
        controller._coordinator.start.assert_awaited_once()
        permissions.unsubscribe.assert_called_once()
        await controller.cleanup()

    @pytest.mark.asyncio
    async def test_revoked_permission_event_is_ignored(self):
        from dryprompt.app.controller import AppState
        controller = make_controller(granted=False)
        await controller.initialize()

        await controller._permissions.callback(False)

        assert controller.state == AppState.PERMISSION_NEEDED
        await controller.cleanup()

    @pytest.mark.asyncio
    async def test_coordinator_failure_enters_error(self):
        from dryprompt.app.controller import AppState
        controller = make_controller()
        controller._coordinator.start.side_effect = RuntimeError("listener crashed")

        await controller.initialize()

        assert controller.state == AppState.ERROR
        await controller.cleanup()


class TestCredentialUpdate:
    @pytest.mark.asyncio
    async def test_empty_credential_raises(self):
        controller = make_controller(has_credential=False)
        controller._secret_store.set_credential.side_effect = ValueError("API key cannot be empty")

        with pytest.raises(ValueError):
            await controller.handle_credential_update("")

    @pytest.mark.asyncio
    async def test_new_credential_bootstraps(self):
        from dryprompt.app.controller import AppState
        controller = make_controller(has_credential=False)
        await controller.initialize()

        controller._secret_store.has_credential.return_value = True
        await controller.handle_credential_update("sk-new")

        controller._secret_store.set_credential.assert_called_once_with("sk-new")
        assert controller.state == AppState.IDLE
        await controller.cleanup()

    @pytest.mark.asyncio
    async def test_new_credential_requests_permission(self):
        from dryprompt.app.controller import AppState
        controller = make_controller(has_credential=False, granted=False)
        await controller.initialize()

        controller._secret_store.has_credential.return_value = True
        await controller.handle_credential_update("sk-new")

        assert controller.state == AppState.PERMISSION_NEEDED
        assert controller._permissions.requested == 1
        await controller.cleanup()

    @pytest.mark.asyncio
    async def test_store_failure_enters_error(self):
        from dryprompt.app.controller import AppState
        from dryprompt.common.secret_store import SecretStoreError
        controller = make_controller(has_credential=False)
        controller._secret_store.set_credential.side_effect = SecretStoreError("read-only")

        await controller.handle_credential_update("sk-new")

        assert controller.state == AppState.ERROR
        await controller.cleanup()


class TestAnalysis:
    @pytest.mark.asyncio
    async def test_single_flight(self):
        release = asyncio.Event()

        async def slow_run():
            await release.wait()
            return make_result()

        run = AsyncMock(side_effect=slow_run)
        controller = make_controller(pipeline_run=run)
        await controller.initialize()

        first = asyncio.create_task(controller.run_analysis())
        await asyncio.sleep(0)
        assert controller.is_analyzing
        second = await controller.run_analysis()
        manual = await controller.trigger_manual_analysis()
        release.set()
        result = await first

        assert second is None
        assert manual is None
        assert result is not None
        assert run.await_count == 1
        assert not controller.is_analyzing
        await controller.cleanup()

    @pytest.mark.asyncio
    async def test_completion_notifies_even_without_suggestions(self):
        from dryprompt.app.controller import AppState
        controller = make_controller()
        await controller.initialize()
        states = []
        controller.add_observer(lambda state, analyzing: states.append(state))

        await controller.trigger_manual_analysis()

        controller._notifier.on_analysis_complete.assert_called_once_with([])
        assert states == [AppState.ANALYZING, AppState.IDLE]
        assert controller.detailed_status()["last_analysis_time"] is not None
        await controller.cleanup()

    @pytest.mark.asyncio
    async def test_pipeline_exception_recovers(self):
        from dryprompt.app.controller import AppState
        run = AsyncMock(side_effect=RuntimeError("unexpected"))
        controller = make_controller(pipeline_run=run, error_recovery_delay=0.02)
        await controller.initialize()

        assert await controller.run_analysis() is None
        assert controller.state == AppState.ERROR
        assert not controller.is_analyzing

        await asyncio.sleep(0.06)
        assert controller.state == AppState.IDLE
        await controller.cleanup()

    @pytest.mark.asyncio
    async def test_second_error_resets_recovery_timer(self):
        from dryprompt.app.controller import AppState
        run = AsyncMock(side_effect=RuntimeError("unexpected"))
        controller = make_controller(pipeline_run=run, error_recovery_delay=0.05)
        await controller.initialize()

        await controller.run_analysis()
        await asyncio.sleep(0.03)
        await controller.run_analysis()
        await asyncio.sleep(0.03)
        # 0.06s after the first error but only 0.03s after the second
        assert controller.state == AppState.ERROR

        await asyncio.sleep(0.05)
        assert controller.state == AppState.IDLE
        await controller.cleanup()

    @pytest.mark.asyncio
    async def test_fatal_stage_error_returns_to_idle(self, tmp_path):
        from dryprompt.analysis.pipeline import AnalysisPipeline, Stage
        from dryprompt.app.controller import AppState
        from dryprompt.capture.log_store import LogStore
        from dryprompt.common.config import AnalysisConfig
        from dryprompt.common.errors import AuthError
        from dryprompt.common.secret_store import FileSecretStore
        log_store = LogStore(log_path=tmp_path / "prompt_log.json", archive_dir=tmp_path / "archive")
        for i in range(6):
            log_store.log_text_input(f"explain snippet number {i}")
        secret_store = FileSecretStore(path=tmp_path / "credentials.json", env_var=None)
        secret_store.set_credential("sk-test")
        complete = AsyncMock()

        def embed(texts):
            raise AuthError("Incorrect API key provided")

        pipeline = AnalysisPipeline(
            log_store,
            secret_store,
            lambda credential: (embed, complete),
            AnalysisConfig(embedding_batch_delay=0, synthesis_delay=0),
        )
        controller = make_controller(pipeline=pipeline, log_store=log_store)
        await controller.initialize()

        result = await controller.trigger_manual_analysis()

        assert controller.state == AppState.IDLE
        assert result is controller.last_result
        assert result.suggestions == []
        assert len(result.errors) == 1
        assert result.errors[0].fatal
        assert result.errors[0].kind == "auth"
        assert result.errors[0].stage == Stage.EMBED
        assert log_store.count() == 0
        assert len(log_store.list_archives()) == 1
        controller._notifier.on_analysis_complete.assert_called_once_with([])
        await controller.cleanup()


class TestScheduling:
    @pytest.mark.asyncio
    async def test_next_analysis_time_set_on_entering_idle(self):
        from datetime import datetime, timedelta, timezone
        controller = make_controller()
        before = datetime.now(timezone.utc)

        await controller.initialize()

        # The scheduler task has not run yet
        next_time = datetime.fromisoformat(controller.detailed_status()["next_analysis_time"])
        assert before + timedelta(seconds=3599) <= next_time
        assert next_time <= datetime.now(timezone.utc) + timedelta(seconds=3600)
        await controller.cleanup()
        assert controller.detailed_status()["next_analysis_time"] is None

    @pytest.mark.asyncio
    async def test_initial_check_skips_small_log(self):
        controller = make_controller(entries=4, initial_check_delay=0.01)
        await controller.initialize()

        await asyncio.sleep(0.05)

        controller._log_store.count.assert_called_once()
        controller._pipeline.run.assert_not_awaited()
        await controller.cleanup()

    @pytest.mark.asyncio
    async def test_initial_check_runs_with_enough_entries(self):
        controller = make_controller(entries=5, initial_check_delay=0.01)
        await controller.initialize()

        await asyncio.sleep(0.05)

        controller._pipeline.run.assert_awaited_once()
        await controller.cleanup()

    @pytest.mark.asyncio
    async def test_scheduler_runs_when_idle(self):
        controller = make_controller(analysis_interval=0.02)
        await controller.initialize()

        await asyncio.sleep(0.07)
        await controller.cleanup()

        assert controller._pipeline.run.await_count >= 1


class TestObserversAndCleanup:
    @pytest.mark.asyncio
    async def test_failing_observer_is_isolated(self, caplog):
        import logging
        from dryprompt.app.controller import AppState
        controller = make_controller()
        seen = []

        def broken(state, analyzing):
            raise RuntimeError("observer bug")

        controller.add_observer(broken)
        controller.add_observer(lambda state, analyzing: seen.append(state))

        with caplog.at_level(logging.ERROR, logger="dryprompt.app.controller"):
            await controller.initialize()

        assert seen == [AppState.IDLE]
        assert "observer bug" in caplog.text
        await controller.cleanup()

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        controller = make_controller()
        seen = []
        unsubscribe = controller.add_observer(lambda state, analyzing: seen.append(state))
        unsubscribe()
        unsubscribe()

        await controller.initialize()

        assert seen == []
        await controller.cleanup()

    @pytest.mark.asyncio
    async def test_cleanup_is_idempotent(self):
        from dryprompt.app.controller import AppState
        controller = make_controller()
        await controller.initialize()

        await controller.cleanup()
        await controller.cleanup()

        controller._coordinator.stop.assert_awaited_once()
        assert controller.state == AppState.STARTING
        assert controller.detailed_status()["next_analysis_time"] is None

    @pytest.mark.asyncio
    async def test_cleanup_stops_permission_polling(self):
        controller = make_controller(granted=False)
        await controller.initialize()

        await controller.cleanup()

        controller._permissions.unsubscribe.assert_called_once()
        controller._coordinator.stop.assert_not_awaited()
