# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

import importlib.metadata as metadata

# constants
PACKAGE_NAME = "aptos-relay"


class Metadata:
    APTOS_HEADER = "x-aptos-client"

    @staticmethod
    def get_aptos_header_val():
        try:
            version = metadata.version(PACKAGE_NAME)
        except metadata.PackageNotFoundError:
            version = "unknown"
        return f"aptos-relay/{version}"
