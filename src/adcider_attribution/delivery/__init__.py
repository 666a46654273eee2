"""
Package: delivery
Description: Attribution delivery for the AdCider SDK.

Provides push delivery to the collector, the backoff policy for
retries, and the batching engine that deduplicates and retries
failed batches.
"""
