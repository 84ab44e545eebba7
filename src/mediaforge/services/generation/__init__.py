"""Generation job lifecycle: dispatch, reconciliation and post fan-out."""
