"""
Phase authorization and workflow module.

Scope:
- Phase vocabulary per work item type
- Phase assignments (who may edit which phase in a workspace) and phase leads
- Authorization evaluator shared by every write
- Immutable phase history, written in the same transaction as the change
- Self-service access requests reviewed by admins or phase leads
- Workload cache, recomputed per workspace on commit
"""
