"""
Sanction engine: expiring mutes, rejoin reconciliation and immediate bans.

Modules:
    - errors: StoreError / DirectoryError taxonomy
    - directory: Discord-backed role and ban operations
    - expiry_scheduler: arms, cancels and resolves mute expiries
    - rejoin_reconciler: re-applies the mute role when a muted member rejoins
    - mute_service: apply-mute and manual-unmute entry points
    - immediate_actions: one-shot ban / unban
"""
