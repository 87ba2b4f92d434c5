# slotwise/core/constants.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details
"""
Well-known type identifiers used by the runtime.

Identifiers follow the ``<base type>~<instance>`` convention understood by the
type-system plugin: the part before ``~`` names the schema, the part after it
names the concrete instance.
"""

# Base schemas
DOMAIN_TYPE_ID = "slotwise.core.ext.domain.v1~"
EXTENSION_TYPE_ID = "slotwise.core.ext.extension.v1~"
ENTRY_TYPE_ID = "slotwise.core.ext.entry.v1~"
ACTION_TYPE_ID = "slotwise.core.comm.action.v1~"
ACTIONS_CHAIN_TYPE_ID = "slotwise.core.comm.actions_chain.v1~"
SHARED_PROPERTY_TYPE_ID = "slotwise.core.comm.shared_property.v1~"
LIFECYCLE_STAGE_TYPE_ID = "slotwise.core.lifecycle.stage.v1~"
LIFECYCLE_HOOK_TYPE_ID = "slotwise.core.lifecycle.hook.v1~"

CORE_TYPE_IDS = (
    DOMAIN_TYPE_ID,
    EXTENSION_TYPE_ID,
    ENTRY_TYPE_ID,
    ACTION_TYPE_ID,
    ACTIONS_CHAIN_TYPE_ID,
    SHARED_PROPERTY_TYPE_ID,
    LIFECYCLE_STAGE_TYPE_ID,
    LIFECYCLE_HOOK_TYPE_ID,
)

# Lifecycle stages
STAGE_INIT = "slotwise.core.lifecycle.stage.v1~slotwise.core.lifecycle.init.v1"
STAGE_ACTIVATED = "slotwise.core.lifecycle.stage.v1~slotwise.core.lifecycle.activated.v1"
STAGE_DEACTIVATED = "slotwise.core.lifecycle.stage.v1~slotwise.core.lifecycle.deactivated.v1"
STAGE_DESTROYED = "slotwise.core.lifecycle.stage.v1~slotwise.core.lifecycle.destroyed.v1"

DEFAULT_LIFECYCLE_STAGES = (STAGE_INIT, STAGE_ACTIVATED, STAGE_DEACTIVATED, STAGE_DESTROYED)

# Extension lifecycle actions handled by every domain
ACTION_LOAD_EXT = "slotwise.core.comm.action.v1~slotwise.core.comm.load_ext.v1"
ACTION_MOUNT_EXT = "slotwise.core.comm.action.v1~slotwise.core.comm.mount_ext.v1"
ACTION_UNMOUNT_EXT = "slotwise.core.comm.action.v1~slotwise.core.comm.unmount_ext.v1"

LIFECYCLE_ACTIONS = frozenset({ACTION_LOAD_EXT, ACTION_MOUNT_EXT, ACTION_UNMOUNT_EXT})

# Timeouts, in seconds
DEFAULT_CHAIN_TIMEOUT = 120.0
DEFAULT_ACTION_TIMEOUT = 30.0

# Wildcard used to subscribe to every shared property of a domain
ALL_PROPERTIES = "*"
