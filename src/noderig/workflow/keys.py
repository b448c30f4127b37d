# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/noderig/workflow/keys.py
# Report metadata vocabulary. Values are always the strings "true"/"false".

ALREADY_INSTALLED = "AlreadyInstalled"
DOWNLOADED_BY_THIS_STEP = "DownloadedByThisStep"
EXTRACTED_BY_THIS_STEP = "ExtractedByThisStep"
INSTALLED_BY_THIS_STEP = "InstalledByThisStep"
CLEANED_UP_BY_THIS_STEP = "CleanedUpByThisStep"
ALREADY_CONFIGURED = "AlreadyConfigured"
CONFIGURED_BY_THIS_STEP = "ConfiguredByThisStep"
UPGRADED_BY_THIS_STEP = "UpgradedByThisStep"
MIGRATED = "Migrated"
IS_READY = "IsReady"

TRUE = "true"
