#
# azimage/base_defaults.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Default settings that are not loaded from any configuration.
To keep dependencies simple, use only Python built-in types here.
'''
# Captured VHDs land in this container of the VM's storage account.
CAPTURE_CONTAINER_NAME_DEFAULT = 'azimage'

# Custom images are encoded as region/CUSTOM_IMAGE_OFFER/name.
CUSTOM_IMAGE_OFFER = 'custom'

# Environment variable naming the YAML config file
ENVIRON_CONFIG_PATH = 'AZIMAGE_CONFIG'

EXC_VALUE_DEFAULT = ValueError

LOCATION_DEFAULT_FALLBACK = 'eastus'

LOGGER_NAME_DEFAULT = 'azimage'

# Scope used when a node reference is given as region/name
NODE_SCOPE_DEFAULT = 'node'

# Prefix for item expansion
PF = '  '

POLL_INTERVAL_DEFAULT = 5.0

RESOURCE_NAME_PREFIX_DEFAULT = 'azimage'

# Azure evaluates NSG rules in ascending priority order within this window.
SECURITY_RULE_PRIORITY_MIN = 100
SECURITY_RULE_PRIORITY_MAX = 4096

# Seconds
TIMEOUT_IMAGE_AVAILABLE_DEFAULT = 1320
TIMEOUT_IMAGE_CAPTURED_DEFAULT = 1320
TIMEOUT_NODE_SUSPENDED_DEFAULT = 300
TIMEOUT_RESOURCE_DELETED_DEFAULT = 600

USER_THREADS_DEFAULT = 8
