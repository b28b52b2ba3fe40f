"""Integration tests for the full event pipeline."""

import asyncio

import pytest


class TestEndToEnd:
    """End-to-end scenarios through EventMonitor."""

    @pytest.mark.asyncio
    async def test_call_lifecycle(self, monitor, recording_client, make_event):
        """Test ringing, queued, diverted and released for one call."""
        outcomes = []
        for event_type in ("DeliveredEvent", "QueuedEvent", "DivertedEvent", "ConnectionClearedEvent"):
            result = await monitor.process_event(make_event(event_type, "C1"))
            outcomes.append(result.outcome)

        assert len(recording_client.creates) == 1
        assert recording_client.update_states == ["ringing", "queued", "diverted", "released"]
        assert monitor.publisher.get_contact_id("C1") is None
        assert outcomes[-1].mapping_released is True
        assert monitor.get_session("C1").current_state == "ConnectionClearedEvent"

    @pytest.mark.asyncio
    async def test_unrecognized_uncorrelated_payload(self, monitor, recording_client):
        """Test a payload with no event type and no markers is only discovered."""
        from cti_monitor.discovery import UNKNOWN_EVENT_TYPE
        from cti_monitor.publishing import PublishStatus

        result = await monitor.process_event("<Ping><status>ok</status></Ping>")

        assert result.outcome.status == PublishStatus.NOT_ELIGIBLE
        assert recording_client.calls == []
        assert monitor.catalog.get(UNKNOWN_EVENT_TYPE).occurrence_count == 1
        assert len(monitor.registry) == 0

    @pytest.mark.asyncio
    async def test_contact_origin_event_never_published(self, monitor, recording_client):
        """Test feedback events from the contact system are suppressed."""
        result = await monitor.process_event('<ContactCreatedEvent callId="C1" ucid="U1"/>')

        assert result.published is False
        assert recording_client.calls == []
        assert "C1" in monitor.registry

    @pytest.mark.asyncio
    async def test_metadata_flows_to_updates(self, monitor, recording_client, make_event):
        """Test extracted fields reach the session and the outbound request."""
        await monitor.process_event(make_event("DeliveredEvent", "C1", ani="5551234", dnis="8005550000"))
        await monitor.process_event(make_event("DivertedEvent", "C1", agentId="A42"))

        session = monitor.get_session("C1")
        assert session.metadata == {"ani": "5551234", "dnis": "8005550000", "agentId": "A42"}
        assert recording_client.creates[0].attributes["ani"] == "5551234"
        assert recording_client.updates[-1].attributes["agent_id"] == "A42"
        assert recording_client.updates[-1].attributes["dnis"] == "8005550000"

    @pytest.mark.asyncio
    async def test_session_evicted_after_retention(self, monitor, clock, make_event):
        """Test the sweeper evicts a released call after the window."""
        await monitor.process_event(make_event("DeliveredEvent", "C1"))
        await monitor.process_event(make_event("ConnectionClearedEvent", "C1"))
        await monitor.process_event(make_event("DeliveredEvent", "C2"))
        clock.advance(seconds=3601)

        removed = await monitor.sweeper.run_once()

        assert removed == ["C1"]
        assert monitor.get_session("C1") is None
        assert monitor.get_session("C2") is not None


class TestBatch:
    """Tests for batch processing."""

    @pytest.mark.asyncio
    async def test_process_batch(self, monitor, recording_client, make_event):
        """Test batch counters."""
        batch = await monitor.process_batch([
            make_event("DeliveredEvent", "C1"),
            "garbage",
            make_event("ContactStateUpdatedEvent", "C1"),
            make_event("QueuedEvent", "C1"),
        ])

        assert batch.total == 4
        assert batch.successful == 4
        assert batch.published == 2
        assert batch.failed == 0
        assert batch.success_rate == 100.0

    @pytest.mark.asyncio
    async def test_batch_counts_failures(self, monitor, recording_client, make_event):
        """Test permanently failed publishes count as failures."""
        recording_client.fail_creates = 3

        batch = await monitor.process_batch([make_event("DeliveredEvent", "C1")])

        assert batch.failed == 1
        assert batch.to_dict()["success_rate"] == 0.0
        assert monitor.get_stats().total_errors == 1


class TestWorkerPool:
    """Tests for queued ingestion."""

    @pytest.mark.asyncio
    async def test_submit_before_start(self, monitor):
        """Test submitting to a stopped monitor raises."""
        from cti_monitor.errors import MonitorNotRunningError

        with pytest.raises(MonitorNotRunningError):
            await monitor.submit("<DeliveredEvent/>")

    @pytest.mark.asyncio
    async def test_many_calls_in_parallel(self, monitor, recording_client, make_event):
        """Test interleaved calls each get one contact and every update."""
        await monitor.start()

        for event_type in ("DeliveredEvent", "QueuedEvent", "ConnectionClearedEvent"):
            for i in range(20):
                await monitor.submit(make_event(event_type, f"C{i}"))
        await monitor.drain()

        stats = monitor.get_stats()
        assert len(recording_client.creates) == 20
        assert len(recording_client.updates) == 60
        assert stats.total_processed == 60
        assert stats.total_published == 60
        assert stats.contact_mappings == 0
        assert stats.active_sessions == 20

    @pytest.mark.asyncio
    async def test_slow_publisher_does_not_block_ingestion(self, monitor, recording_client, make_event):
        """Test ingestion continues while a publish is stuck."""
        gate = asyncio.Event()
        deliver = recording_client.update_contact

        async def slow_update(request):
            if request.attributes.get("source_call_id") == "SLOW":
                await gate.wait()
            await deliver(request)

        recording_client.update_contact = slow_update
        await monitor.start()

        await monitor.submit(make_event("DeliveredEvent", "SLOW"))
        await monitor.submit(make_event("DeliveredEvent", "FAST"))
        for _ in range(100):
            if monitor.publisher.events_sent:
                break
            await asyncio.sleep(0.01)

        assert monitor.get_session("FAST") is not None
        assert monitor.publisher.events_sent == 1

        gate.set()
        await monitor.drain()
        assert monitor.publisher.events_sent == 2

    @pytest.mark.asyncio
    async def test_stop_abandons_stuck_publish_after_grace(self, settings, recording_client, clock, make_event):
        """Test shutdown waits only the grace period for in-flight publishes."""
        from cti_monitor.monitor import EventMonitor

        settings.shutdown_grace_seconds = 0.05
        monitor = EventMonitor(settings, client=recording_client, clock=clock)

        async def never_returns(request):
            await asyncio.Event().wait()

        recording_client.update_contact = never_returns
        await monitor.start()
        await monitor.submit(make_event("DeliveredEvent", "C1"))
        await monitor._queue.join()

        await asyncio.wait_for(monitor.stop(), timeout=2.0)

        assert monitor.is_running is False
        assert recording_client.closed is True
        assert monitor.get_stats().in_flight_publishes == 0

    @pytest.mark.asyncio
    async def test_heartbeat_runs_with_monitor(self, settings, recording_client, clock):
        """Test the heartbeat starts with the monitor."""
        from cti_monitor.monitor import EventMonitor

        settings.publisher.heartbeat_interval_seconds = 0.01
        monitor = EventMonitor(settings, client=recording_client, clock=clock)

        async with monitor:
            for _ in range(100):
                if recording_client.heartbeats:
                    break
                await asyncio.sleep(0.01)

        assert len(recording_client.heartbeats) >= 1

    @pytest.mark.asyncio
    async def test_publishing_disabled(self, settings, recording_client, clock, make_event):
        """Test a disabled publisher still classifies and records."""
        from cti_monitor.monitor import EventMonitor
        from cti_monitor.publishing import PublishStatus

        settings.publisher.enabled = False
        monitor = EventMonitor(settings, client=recording_client, clock=clock)

        result = await monitor.process_event(make_event("DeliveredEvent", "C1"))

        assert result.outcome.status == PublishStatus.DISABLED
        assert recording_client.calls == []
        assert monitor.get_session("C1") is not None


class TestRulesFileWiring:
    """Tests for loading deployment rules into the monitor."""

    @pytest.mark.asyncio
    async def test_vendor_rules(self, settings, recording_client, clock, tmp_path):
        """Test a rules file teaches the monitor new event names."""
        from cti_monitor.monitor import EventMonitor

        path = tmp_path / "rules.yaml"
        path.write_text(
            "event_type_rules:\n"
            "  - name: vendor\n"
            "    pattern: 'type=(\\w+)'\n"
            "call_id_rules:\n"
            "  - name: session\n"
            "    pattern: 'session=(\\w+)'\n"
            "categories:\n"
            "  - category: ringing\n"
            "    keywords: [offered]\n"
            "  - category: released\n"
            "    keywords: [hangup]\n"
        )
        settings.discovery.rules_file = path
        monitor = EventMonitor(settings, client=recording_client, clock=clock)

        await monitor.process_event("type=CallOffered session=S1")
        await monitor.process_event("type=Hangup session=S1")

        assert recording_client.update_states == ["ringing", "released"]
        assert monitor.publisher.get_contact_id("S1") is None


class TestStats:
    """Tests for diagnostics counters."""

    @pytest.mark.asyncio
    async def test_get_stats(self, monitor, make_event):
        """Test counters after a few events."""
        await monitor.process_event(make_event("DeliveredEvent", "C1"))
        await monitor.process_event(make_event("DeliveredEvent", "C2"))
        await monitor.process_event("garbage")

        stats = monitor.get_stats()

        assert stats.total_processed == 3
        assert stats.total_published == 2
        assert stats.total_errors == 0
        assert stats.discovered_event_types == 2
        assert stats.active_sessions == 2
        assert stats.contact_mappings == 2
        assert stats.success_rate == 100.0
        assert stats.to_dict()["running"] is False

    @pytest.mark.asyncio
    async def test_discovered_summary(self, monitor, make_event):
        """Test the discovery summary is ordered by occurrences."""
        await monitor.process_event(make_event("QueuedEvent", "C1"))
        await monitor.process_event(make_event("DeliveredEvent", "C1"))
        await monitor.process_event(make_event("DeliveredEvent", "C2"))

        summary = monitor.discovered_event_types()
        monitor.log_status_report()

        assert [e.event_type for e in summary] == ["DeliveredEvent", "QueuedEvent"]
        assert summary[0].call_ids == ["C1", "C2"]
