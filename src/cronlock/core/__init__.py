"""Platform primitives shared by the scheduler, the lock store and the CLI."""
