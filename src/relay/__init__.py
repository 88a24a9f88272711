"""
Gasless governance relay.

End users sign EIP-712 payloads; the admin-funded relay wallet submits them
and pays gas. Entry points for the UI layer:

- ``VoteRelay.cast_vote``: validated, tiered vote submission
- ``DelegationExecutor.delegate``: voting-power activation with bounded retry
- ``ProposalLifecycle.get_state``: human-readable proposal state
"""
