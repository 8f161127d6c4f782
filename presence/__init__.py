"""Presence synchronization engine.

Turns the chat host's live state into presence payloads and pushes them to
the SillyRPC agent.

Module Overview
---------------
**formatting.py**
    Pretty model/provider names and counter display. Pure functions.

**context.py**
    Host snapshot -> SessionContext (character, group, or nothing active),
    plus the SessionClock that keeps a session's start time stable.

**tokens.py**
    Token counting over the visible transcript via the host's counter.

**avatar_cache.py**
    Avatar URL resolution through the agent, memoized in a key-value store
    (JSON file by default).

**payload.py**
    PresencePayload wire record and the pure assemble() step.

**agent_client.py**
    httpx client for the plugin's settings/update/upload-avatar endpoints.

**config.py**
    Settings value object, config.yaml load/save, remote settings.

**events.py**
    Host event names and the in-process EventBus.

**dispatcher.py**
    PresenceEngine: runs the pipeline on host events and on a fallback timer.

**platforms/snapshot_file.py**
    Standalone host that watches a JSON state snapshot on disk.

Architecture
------------
1. **Pure core**: formatting, context extraction, and assembly take all
   state as arguments and never perform I/O.

2. **Explicit configuration**: Settings are immutable and passed into the
   engine; nothing reads ambient global configuration at run time.

3. **Passive path never raises**: every network or host failure on the
   update path is logged and converted to a fallback value.
"""
