"""Tests for the HTTP, file and demo connectors."""

import json

import httpx
import polars as pl
import pytest
import diskcache as dc

from paged_enricher.cache import CachedEnricher
from paged_enricher.config import PipelineConfig
from paged_enricher.connectors.demo import DemoCompanySource, DemoOrderEnricher
from paged_enricher.connectors.files import FileSink, TableSource
from paged_enricher.connectors.http import HttpEnricher, HttpSink, HttpSource
from paged_enricher.errors import EnrichmentError
from paged_enricher.pipeline import run_pipeline
from paged_enricher.utils.typing import Batch, EnrichedRecord, Record

from helpers import FakeEnricher, ListSource, RecordingSink

COMPANIES = [{"id": i, "name": f"Company {i}"} for i in range(7)]


def api_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/companies":
        limit = int(request.url.params["limit"])
        offset = int(request.url.params["offset"])
        return httpx.Response(200, json={"items": COMPANIES[offset:offset + limit]})
    if request.url.path.startswith("/companies/"):
        company_id = int(request.url.path.split("/")[2])
        if company_id == 3:
            return httpx.Response(404, json={"error": "not found"})
        return httpx.Response(200, json={"orders": company_id * 10})
    if request.url.path == "/emails":
        return httpx.Response(202, json={"queued": len(json.loads(request.content))})
    return httpx.Response(500)


def make_batch(*ids) -> Batch:
    records = tuple(EnrichedRecord(Record(id=i, data={"name": f"c{i}"}), {"orders": [i, i]}) for i in ids)
    return Batch(sequence=0, records=records, reason="count")


class TestHttpConnectors:
    """httpx-backed collaborators."""

    @pytest.mark.asyncio
    async def test_source_pages(self):
        async with httpx.AsyncClient(transport=httpx.MockTransport(api_handler), base_url="http://api") as client:
            source = HttpSource("/companies", client=client, items_key="items")

            page = await source.fetch(5, 5)

        assert [r.id for r in page] == [5, 6]
        assert page[0].data["name"] == "Company 5"

    @pytest.mark.asyncio
    async def test_enricher_raises_on_http_error(self):
        async with httpx.AsyncClient(transport=httpx.MockTransport(api_handler), base_url="http://api") as client:
            enricher = HttpEnricher("/companies/{id}/orders", client=client)

            assert await enricher.enrich(Record(id=2)) == {"orders": 20}
            with pytest.raises(httpx.HTTPStatusError):
                await enricher.enrich(Record(id=3))

    @pytest.mark.asyncio
    async def test_requires_client(self):
        with pytest.raises(RuntimeError):
            await HttpSink("http://api/emails").deliver(make_batch(1))

    @pytest.mark.asyncio
    async def test_full_http_pipeline(self):
        """A failing lookup is dropped; everything else reaches the sink."""
        transport = httpx.MockTransport(api_handler)
        async with httpx.AsyncClient(transport=transport, base_url="http://api") as client:
            source = HttpSource("/companies", client=client, items_key="items")
            enricher = HttpEnricher("/companies/{id}/orders", client=client)
            sink = HttpSink("/emails", client=client)

            result = await run_pipeline(PipelineConfig(), source, enricher, sink)

        assert result.records_fetched == 7
        assert result.records_delivered == 6
        assert result.losses[0].record.id == 3
        assert isinstance(result.losses[0], EnrichmentError)


class TestFileConnectors:
    """polars-backed source and sink."""

    @pytest.mark.asyncio
    async def test_table_source_slices(self):
        source = TableSource(pl.DataFrame({"code": ["a", "b", "c"], "v": [1, 2, 3]}), id_column="code")

        page = await source.fetch(2, 1)

        assert [r.id for r in page] == ["b", "c"]
        assert page[0].data["v"] == 2
        assert await source.fetch(2, 3) == []

    def test_table_source_missing_column(self):
        with pytest.raises(ValueError):
            TableSource(pl.DataFrame({"v": [1]}), id_column="code")

    @pytest.mark.asyncio
    async def test_csv_sink_writes_on_close(self, tmp_path):
        path = tmp_path / "out.csv"
        sink = FileSink(str(path))

        await sink.deliver(make_batch(0, 1))
        await sink.deliver(make_batch(2))
        assert not path.exists()
        sink.close()

        df = pl.read_csv(path)
        assert df["id"].to_list() == [0, 1, 2]
        assert json.loads(df["orders"][2]) == [2, 2]
        assert sink.rows_written == 3

    @pytest.mark.asyncio
    async def test_parquet_sink_writes_on_close(self, tmp_path):
        path = tmp_path / "out.parquet"
        sink = FileSink(str(path))

        await sink.deliver(make_batch(0, 1))
        assert not path.exists()
        sink.close()

        assert pl.read_parquet(path)["id"].to_list() == [0, 1]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("suffix", [".csv", ".parquet"])
    async def test_sink_aligns_columns_across_batches(self, tmp_path, suffix):
        """Batches whose lookups return different keys line up under one header."""
        path = tmp_path / f"out{suffix}"
        sink = FileSink(str(path))
        first = Batch(0, (EnrichedRecord(Record(id=0), {"a": 1}),), "count")
        second = Batch(1, (EnrichedRecord(Record(id=1), {"b": 2, "a": 3}),), "count")

        await sink.deliver(first)
        await sink.deliver(second)
        sink.close()

        df = pl.read_csv(path) if suffix == ".csv" else pl.read_parquet(path)
        assert df.columns == ["id", "a", "b"]
        assert df["a"].to_list() == [1, 3]
        assert df["b"].to_list() == [None, 2]

    def test_unsupported_format(self, tmp_path):
        with pytest.raises(ValueError):
            FileSink(str(tmp_path / "out.json"))

    @pytest.mark.asyncio
    async def test_csv_round_trip_through_pipeline(self, tmp_path):
        source_path = tmp_path / "in.csv"
        pl.DataFrame({"name": [f"n{i}" for i in range(9)]}).write_csv(source_path)
        out_path = tmp_path / "out.csv"
        sink = FileSink(str(out_path))

        await run_pipeline(PipelineConfig(), TableSource.from_path(str(source_path)), FakeEnricher(), sink)
        sink.close()

        df = pl.read_csv(out_path).sort("id")
        assert df["id"].to_list() == list(range(9))
        assert df["double"].to_list() == [i * 2 for i in range(9)]


class TestDemoConnectors:
    """Synthetic collaborators."""

    @pytest.mark.asyncio
    async def test_source_stops_at_total(self):
        source = DemoCompanySource(total=7, time_scale=0, seed=3)

        assert len(await source.fetch(5, 5)) == 2
        assert await source.fetch(5, 10) == []
        assert source.offsets == [5, 10]

    @pytest.mark.asyncio
    async def test_orders_and_anomalies(self):
        enricher = DemoOrderEnricher(time_scale=0, randomness=False)

        result = await enricher.enrich(Record(id=0))

        assert result["order_count"] == 6
        assert len(result["orders"]) == 6
        assert enricher.is_anomaly(Record(id=9))
        assert not enricher.is_anomaly(Record(id=8))


class TestCachedEnricher:
    """diskcache-backed lookups."""

    @pytest.mark.asyncio
    async def test_second_lookup_hits_cache(self, tmp_path):
        inner = FakeEnricher()
        with dc.Cache(str(tmp_path)) as cache:
            enricher = CachedEnricher(inner, cache=cache)

            first = await enricher.enrich(Record(id=4))
            second = await enricher.enrich(Record(id=4))

        assert first == second == {"double": 8}
        assert inner.calls == [4]
        assert (enricher.hits, enricher.misses) == (1, 1)

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self, tmp_path):
        inner = FakeEnricher(fail_ids={1})
        with dc.Cache(str(tmp_path)) as cache:
            enricher = CachedEnricher(inner, cache=cache)

            for _ in range(2):
                with pytest.raises(LookupError):
                    await enricher.enrich(Record(id=1))

        assert inner.calls == [1, 1]

    @pytest.mark.asyncio
    async def test_pipeline_with_cache(self, tmp_path):
        with dc.Cache(str(tmp_path)) as cache:
            enricher = CachedEnricher(FakeEnricher(), cache=cache)
            sink = RecordingSink()

            result = await run_pipeline(PipelineConfig(), ListSource(total=12), enricher, sink)

        assert result.records_delivered == 12
        assert enricher.misses == 12

    @pytest.mark.asyncio
    async def test_lookups_for_different_urls_do_not_share_entries(self, tmp_path):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"source": request.url.path.split("/")[1]})

        with dc.Cache(str(tmp_path)) as cache:
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://api") as client:
                first = CachedEnricher(HttpEnricher("/a/{id}", client=client), cache=cache)
                second = CachedEnricher(HttpEnricher("/b/{id}", client=client), cache=cache)

                assert await first.enrich(Record(id=0)) == {"source": "a"}
                assert await second.enrich(Record(id=0)) == {"source": "b"}
                assert await second.enrich(Record(id=0)) == {"source": "b"}

        assert (first.misses, second.misses, second.hits) == (1, 1, 1)

    @pytest.mark.asyncio
    async def test_enrichers_without_cache_key_are_kept_apart(self, tmp_path):
        class TaggingEnricher:
            async def enrich(self, record):
                return {"tag": "other"}

        with dc.Cache(str(tmp_path)) as cache:
            doubled = CachedEnricher(FakeEnricher(), cache=cache)
            tagged = CachedEnricher(TaggingEnricher(), cache=cache)

            assert await doubled.enrich(Record(id=3)) == {"double": 6}
            assert await tagged.enrich(Record(id=3)) == {"tag": "other"}
