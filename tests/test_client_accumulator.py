import asyncio
import unittest

from app.client.accumulator import AccumulatingFetcher, FetchMode, LoadOrder
from tests.client_fakes import FakeListClient, make_rows


def _ids(rows):
    return [row["id"] for row in rows]


class AccumulatingFetcherTests(unittest.IsolatedAsyncioTestCase):
    async def test_configure_loads_first_page(self):
        client = FakeListClient(make_rows(7))
        fetcher = AccumulatingFetcher(client, "jobs", page_size=3)
        self.assertTrue(await fetcher.configure({"where": {"status": "PUBLISHED"}, "skip": 9, "take": 99}))
        self.assertEqual(_ids(fetcher.all_data), ["1", "2", "3"])
        self.assertEqual(client.calls[0], ("jobs", {"where": {"status": "PUBLISHED"}, "skip": 0, "take": 3}))
        self.assertEqual(fetcher.state.total_pages, 3)
        self.assertTrue(fetcher.can_load_more)

    async def test_same_configuration_does_not_refetch(self):
        client = FakeListClient(make_rows(7))
        fetcher = AccumulatingFetcher(client, "jobs", page_size=3)
        await fetcher.configure({"where": {"a": 1, "b": 2}})
        self.assertFalse(await fetcher.configure({"where": {"b": 2, "a": 1}}))
        self.assertEqual(len(client.calls), 1)

    async def test_load_more_appends_until_exhausted(self):
        fetcher = AccumulatingFetcher(FakeListClient(make_rows(7)), "jobs", page_size=3)
        await fetcher.configure({})
        self.assertTrue(await fetcher.load_more())
        self.assertTrue(await fetcher.load_more())
        self.assertEqual(_ids(fetcher.all_data), [str(i) for i in range(1, 8)])
        self.assertEqual(_ids(fetcher.current_page_data), ["7"])
        self.assertFalse(fetcher.can_load_more)
        self.assertFalse(await fetcher.load_more())

    async def test_prepend_order(self):
        fetcher = AccumulatingFetcher(FakeListClient(make_rows(4)), "jobs", page_size=2, load_order=LoadOrder.PREPEND)
        await fetcher.configure({})
        await fetcher.load_more()
        self.assertEqual(_ids(fetcher.all_data), ["3", "4", "1", "2"])

    async def test_concurrent_load_more_fetches_one_page(self):
        client = FakeListClient(make_rows(9))
        fetcher = AccumulatingFetcher(client, "jobs", page_size=3)
        await fetcher.configure({})
        client.gate = asyncio.Event()
        first = asyncio.create_task(fetcher.load_more())
        second = asyncio.create_task(fetcher.load_more())
        await asyncio.sleep(0)
        self.assertEqual(fetcher.mode, FetchMode.LOAD_MORE)
        client.gate.set()
        results = await asyncio.gather(first, second)
        self.assertEqual(sorted(results), [False, True])
        self.assertEqual(_ids(fetcher.all_data), [str(i) for i in range(1, 7)])
        self.assertEqual(len(client.calls), 2)

    async def test_response_for_old_configuration_is_discarded(self):
        client = FakeListClient(make_rows(9))
        fetcher = AccumulatingFetcher(client, "jobs", page_size=3)
        await fetcher.configure({})
        client.gate = asyncio.Event()
        stale = asyncio.create_task(fetcher.load_more())
        await asyncio.sleep(0)
        fresh = asyncio.create_task(fetcher.configure({"where": {"title": "x"}}))
        await asyncio.sleep(0)
        client.gate.set()
        self.assertFalse(await stale)
        self.assertTrue(await fresh)
        self.assertEqual(_ids(fetcher.all_data), ["1", "2", "3"])
        self.assertEqual(fetcher.state.skip, 0)

    async def test_failed_load_more_keeps_data_and_reports(self):
        errors = []
        client = FakeListClient(make_rows(9))
        fetcher = AccumulatingFetcher(client, "jobs", page_size=3, on_error=errors.append)
        await fetcher.configure({})
        client.fail_with = RuntimeError("down")
        with self.assertRaises(RuntimeError):
            await fetcher.load_more()
        self.assertEqual(_ids(fetcher.all_data), ["1", "2", "3"])
        self.assertEqual(fetcher.mode, FetchMode.IDLE)
        self.assertFalse(fetcher.state.is_loading_more)
        self.assertEqual(len(errors), 1)
        self.assertTrue(fetcher.can_load_more)

    async def test_reset_reloads_first_page(self):
        client = FakeListClient(make_rows(9))
        fetcher = AccumulatingFetcher(client, "jobs", page_size=3)
        await fetcher.configure({})
        await fetcher.load_more()
        self.assertTrue(await fetcher.reset())
        self.assertEqual(_ids(fetcher.all_data), ["1", "2", "3"])

    async def test_page_size_change_restarts(self):
        client = FakeListClient(make_rows(9))
        fetcher = AccumulatingFetcher(client, "jobs", page_size=3)
        await fetcher.configure({})
        await fetcher.load_more()
        self.assertTrue(await fetcher.configure({}, page_size=4))
        self.assertEqual(_ids(fetcher.all_data), ["1", "2", "3", "4"])
        self.assertEqual(fetcher.state.total_pages, 3)

    async def test_set_all_data(self):
        fetcher = AccumulatingFetcher(FakeListClient(make_rows(3)), "jobs", page_size=3)
        await fetcher.configure({})
        fetcher.set_all_data(lambda rows: [row for row in rows if row["id"] != "2"])
        self.assertEqual(_ids(fetcher.all_data), ["1", "3"])
        fetcher.set_all_data([{"id": "9"}])
        self.assertEqual(_ids(fetcher.all_data), ["9"])
