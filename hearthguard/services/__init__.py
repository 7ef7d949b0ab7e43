"""HearthGuard services.

- decision_service: threshold, bias and flag gating
- crisis_guard: crisis-resource suppression and allowlist sync
- notification_service: per-guardian routing, digests, quiet hours
"""
