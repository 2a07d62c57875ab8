"""Prometheus metrics for monitoring."""

from prometheus_client import Counter, Histogram

query_counter = Counter("rag_queries_total",
                        "Total number of chat queries processed")
query_errors_total = Counter(
    "rag_query_errors_total", "Total number of query errors")
query_latency_seconds = Histogram(
    "rag_query_latency_seconds", "Retrieval latency in seconds", buckets=[0.1, 0.5, 1.0, 2.0, 5.0])
retrieval_results = Histogram(
    "rag_retrieval_results", "Number of chunks returned per retrieval", buckets=[0, 1, 2, 3, 5, 10])

documents_ingested_total = Counter(
    "rag_documents_ingested_total", "Total number of documents ingested successfully")
documents_failed_total = Counter(
    "rag_documents_failed_total", "Total number of documents that failed ingestion")
chunks_stored_total = Counter(
    "rag_chunks_stored_total", "Total number of chunks written to the vector store")
ingestion_duration_seconds = Histogram(
    "rag_ingestion_duration_seconds", "Per-document ingestion duration", buckets=[0.5, 1.0, 5.0, 10.0, 30.0, 60.0])

storage_retries_total = Counter(
    "rag_storage_retries_total", "Vector store calls retried after a transient failure", ["operation"])
