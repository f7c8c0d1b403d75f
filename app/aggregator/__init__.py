"""Bridge Quote Aggregation Layer.

Compares transfer routes across independent cross-chain bridge providers:
  - Provider Adapters (protocol differences per bridge)
  - Fan-Out Dispatcher (per-call and global deadlines)
  - Quote Normalizer (USD costs, timing buckets, batch warnings)
  - Security Scorer (audit/exploit history → bounded score)
  - Ranking Engine (weighted min-max scoring, deterministic tie-break)
  - Quote Cache (bucketed request key, short TTL)
  - Sliding-window Rate Limiter (per caller, minute + hour)
"""
