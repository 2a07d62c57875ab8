"""Performance benchmarking script for the PDF chat services."""

import asyncio
import time
from typing import Dict, List

import httpx

SAMPLE_QUERIES = [
    "What is this document about?",
    "Summarize the main findings",
    "What methodology was used?",
    "List the key recommendations",
    "What are the limitations mentioned?",
]


def _latency_summary(latencies: List[float], total: int, total_time: float) -> Dict:
    if latencies:
        ordered = sorted(latencies)
        avg_latency = sum(ordered) / len(ordered)
        p50 = ordered[len(ordered) // 2]
        p95 = ordered[int(len(ordered) * 0.95)]
        p99 = ordered[int(len(ordered) * 0.99)]
    else:
        avg_latency = p50 = p95 = p99 = 0

    return {
        "total_requests": total,
        "successful": len(latencies),
        "errors": total - len(latencies),
        "total_time_seconds": total_time,
        "requests_per_second": total / total_time if total_time > 0 else 0,
        "avg_latency_seconds": avg_latency,
        "p50_latency_seconds": p50,
        "p95_latency_seconds": p95,
        "p99_latency_seconds": p99,
    }


async def benchmark_chat(
    base_url: str = "http://localhost:8003",
    num_queries: int = 50,
    concurrent: int = 5,
) -> Dict:
    """
    Benchmark streamed chat answers end to end.

    Args:
        base_url: Base URL of chat service.
        num_queries: Total number of chat requests.
        concurrent: Number of concurrent requests.

    Returns:
        Benchmark results, including time to first byte.
    """
    queries = (SAMPLE_QUERIES * (num_queries // len(SAMPLE_QUERIES) + 1))[:num_queries]
    latencies: List[float] = []
    first_byte: List[float] = []

    async def run_query(client: httpx.AsyncClient, query: str) -> None:
        start = time.time()
        try:
            async with client.stream(
                "POST",
                f"{base_url}/api/chat",
                json={"messages": [{"role": "user", "content": query}]},
            ) as response:
                if response.status_code != 200:
                    return
                first = None
                async for _ in response.aiter_text():
                    if first is None:
                        first = time.time() - start
            latencies.append(time.time() - start)
            if first is not None:
                first_byte.append(first)
        except httpx.HTTPError as e:
            print(f"Error: {e}")

    start_time = time.time()
    async with httpx.AsyncClient(timeout=60.0) as client:
        for i in range(0, len(queries), concurrent):
            batch = queries[i:i + concurrent]
            await asyncio.gather(*[run_query(client, q) for q in batch])
    total_time = time.time() - start_time

    results = _latency_summary(latencies, num_queries, total_time)
    results["avg_first_byte_seconds"] = (
        sum(first_byte) / len(first_byte) if first_byte else 0
    )
    return results


async def benchmark_search(
    base_url: str = "http://localhost:8003",
    num_queries: int = 100,
    concurrent: int = 10,
) -> Dict:
    """
    Benchmark exploratory vector search.

    Args:
        base_url: Base URL of chat service.
        num_queries: Total number of searches.
        concurrent: Number of concurrent requests.

    Returns:
        Benchmark results.
    """
    queries = (SAMPLE_QUERIES * (num_queries // len(SAMPLE_QUERIES) + 1))[:num_queries]
    latencies: List[float] = []

    async def run_query(client: httpx.AsyncClient, query: str) -> None:
        try:
            start = time.time()
            response = await client.post(
                f"{base_url}/api/vectors/search",
                json={"query": query, "limit": 5},
            )
            if response.status_code == 200:
                latencies.append(time.time() - start)
        except httpx.HTTPError as e:
            print(f"Error: {e}")

    start_time = time.time()
    async with httpx.AsyncClient(timeout=30.0) as client:
        for i in range(0, len(queries), concurrent):
            batch = queries[i:i + concurrent]
            await asyncio.gather(*[run_query(client, q) for q in batch])
    total_time = time.time() - start_time

    return _latency_summary(latencies, num_queries, total_time)


if __name__ == "__main__":
    import json

    print("Running PDF chat benchmarks...")

    search_results = asyncio.run(benchmark_search())
    print("\nVector Search Results:")
    print(json.dumps(search_results, indent=2))

    chat_results = asyncio.run(benchmark_chat())
    print("\nChat Results:")
    print(json.dumps(chat_results, indent=2))
