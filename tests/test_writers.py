"""Tests for the status and done log writers."""

import asyncio

import pytest

from conftest import read_lines, write_hosts
from sweep.errors import WriterError
from sweep.hosts import Host, HostListStore
from sweep.writers import DoneLogWriter, StatusEvent, StatusLogWriter


class TestStatusLogWriter:

    def test_ten_concurrent_senders(self, tmp_path):
        path = tmp_path / "status.log"
        hosts = [Host(f"10.0.0.{i}", f"web{i}") for i in range(10)]
        payload = "x" * 4096

        async def scenario():
            writer = StatusLogWriter(path)
            task = asyncio.create_task(writer.run())
            await asyncio.gather(*(writer.report(h, payload) for h in hosts))
            writer.stop()
            await task

        asyncio.run(scenario())

        lines = read_lines(path)
        assert len(lines) == 10
        assert sorted(lines) == sorted(f"{h.address},{h.name},{payload}" for h in hosts)

    def test_line_is_on_disk_when_send_returns(self, tmp_path):
        path = tmp_path / "status.log"
        host = Host("10.0.0.1", "web1")
        seen = []

        async def scenario():
            writer = StatusLogWriter(path)
            task = asyncio.create_task(writer.run())
            await writer.report(host, "info: script copied")
            seen.extend(read_lines(path))
            writer.stop()
            await task

        asyncio.run(scenario())

        assert seen == ["10.0.0.1,web1,info: script copied"]

    def test_appends_to_existing_log(self, tmp_path):
        path = tmp_path / "status.log"
        path.write_text("10.0.0.9,old,from an earlier run\n")

        async def scenario():
            writer = StatusLogWriter(path)
            task = asyncio.create_task(writer.run())
            await writer.report(Host("10.0.0.1", "web1"), "hello")
            writer.stop()
            await task

        asyncio.run(scenario())

        assert read_lines(path) == ["10.0.0.9,old,from an earlier run", "10.0.0.1,web1,hello"]

    def test_stop_without_events_creates_empty_log(self, tmp_path):
        path = tmp_path / "status.log"

        async def scenario():
            writer = StatusLogWriter(path)
            task = asyncio.create_task(writer.run())
            writer.stop()
            await task

        asyncio.run(scenario())

        assert path.exists()
        assert read_lines(path) == []

    def test_open_failure_is_fatal(self, tmp_path):
        async def scenario():
            await StatusLogWriter(tmp_path / "missing" / "status.log").run()

        with pytest.raises(WriterError):
            asyncio.run(scenario())

    def test_append_failure_reaches_sender_and_writer(self, tmp_path):
        path = tmp_path / "status.log"
        outcome = {}

        def broken_append(event):
            raise OSError("disk full")

        async def scenario():
            writer = StatusLogWriter(path)
            writer._append = broken_append
            task = asyncio.create_task(writer.run())
            try:
                await writer.report(Host("10.0.0.1", "web1"), "hello")
            except WriterError as e:
                outcome["sender"] = e
            try:
                await task
            except WriterError as e:
                outcome["writer"] = e

        asyncio.run(scenario())

        assert "disk full" in str(outcome["sender"])
        assert "disk full" in str(outcome["writer"])


    def test_write_before_open_is_an_error(self, tmp_path):
        async def scenario():
            writer = StatusLogWriter(tmp_path / "status.log")
            writer._handle(StatusEvent(Host("10.0.0.1", "web1"), "hello"))

        with pytest.raises(WriterError, match="not open"):
            asyncio.run(scenario())

        assert not (tmp_path / "status.log").exists()

class TestDoneLogWriter:

    def test_records_then_removes(self, tmp_path):
        hosts_path = tmp_path / "hosts.txt"
        done_path = tmp_path / "done.log"
        write_hosts(hosts_path, "10.0.0.1,web1", "10.0.0.2,web2")
        store = HostListStore(hosts_path)

        async def scenario():
            writer = DoneLogWriter(done_path, store)
            task = asyncio.create_task(writer.run())
            await writer.complete(Host("10.0.0.2", "web2"), "hello from web2,bye")
            writer.stop()
            await task

        asyncio.run(scenario())

        assert read_lines(done_path) == ["10.0.0.2,web2,hello from web2,bye"]
        assert read_lines(hosts_path) == ["10.0.0.1,web1"]

    def test_done_line_is_durable_before_removal(self, tmp_path):
        hosts_path = tmp_path / "hosts.txt"
        done_path = tmp_path / "done.log"
        write_hosts(hosts_path, "10.0.0.1,web1")
        seen_at_removal = []

        class WatchingStore(HostListStore):
            def remove_host(self, target):
                seen_at_removal.extend(read_lines(done_path))
                return super().remove_host(target)

        async def scenario():
            writer = DoneLogWriter(done_path, WatchingStore(hosts_path))
            task = asyncio.create_task(writer.run())
            await writer.complete(Host("10.0.0.1", "web1"), "ok")
            writer.stop()
            await task

        asyncio.run(scenario())

        assert seen_at_removal == ["10.0.0.1,web1,ok"]

    def test_concurrent_completions_all_removed(self, tmp_path):
        hosts_path = tmp_path / "hosts.txt"
        done_path = tmp_path / "done.log"
        hosts = [Host(f"10.0.1.{i}", f"node{i}") for i in range(10)]
        write_hosts(hosts_path, *(str(h) for h in hosts))

        async def scenario():
            writer = DoneLogWriter(done_path, HostListStore(hosts_path))
            task = asyncio.create_task(writer.run())
            await asyncio.gather(*(writer.complete(h, "ok") for h in hosts))
            writer.stop()
            await task

        asyncio.run(scenario())

        assert len(read_lines(done_path)) == 10
        assert read_lines(hosts_path) == []

    def test_store_failure_is_fatal(self, tmp_path):
        done_path = tmp_path / "done.log"
        store = HostListStore(tmp_path / "gone.txt")

        async def scenario():
            writer = DoneLogWriter(done_path, store)
            task = asyncio.create_task(writer.run())
            with pytest.raises(WriterError):
                await writer.complete(Host("10.0.0.1", "web1"), "ok")
            await task

        with pytest.raises(WriterError):
            asyncio.run(scenario())

        # The completion is still recorded even though removal failed.
        assert read_lines(done_path) == ["10.0.0.1,web1,ok"]
