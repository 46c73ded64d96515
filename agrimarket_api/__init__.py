# SPDX-License-Identifier: Apache-2.0

"""
AgriMarket demand API: buyer demands, farmer responses and buyer notifications.
"""

__version__ = "1.0.0"
