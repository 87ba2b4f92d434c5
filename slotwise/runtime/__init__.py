"""
Runtime package composing registration, routing and mounting.

Architecture:
- ExtensionManager owns domain and extension state
- ActionsChainsMediator routes actions to handlers
- LifecycleManager runs lifecycle hooks in declaration order
- MountManager drives load/mount/unmount
- OperationSerializer orders operations per entity id
- Registry composes all of them

Design Patterns:
- Facade for the public API
- Mediator for action routing
- Strategy for loader handlers and mount semantics

Cross-cutting:
- Fire-and-forget work tracked by BackgroundTasks
- Errors from detached work go to the configured error handler
"""
