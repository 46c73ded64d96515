#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Script to create MongoDB indexes for the demand and notification collections.

Usage:
    python -m agrimarket_api.scripts.create_indexes [--uri URI] [--database NAME]
"""

import argparse
import sys
import logging

from agrimarket_api.services.mongodb import MongoDBService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def main(argv=None) -> int:
    """Create MongoDB indexes."""
    parser = argparse.ArgumentParser(description="Create AgriMarket MongoDB indexes")
    parser.add_argument("--uri", help="MongoDB connection string (default: MONGODB_URI)")
    parser.add_argument("--database", help="Database name (default: MONGODB_DATABASE)")
    args = parser.parse_args(argv)

    mongodb_service = MongoDBService(args.uri, args.database)
    try:
        logger.info("Starting MongoDB index creation...")

        health = mongodb_service.health_check()
        if health['status'] != 'healthy':
            logger.error(f"MongoDB is not healthy: {health}")
            return 1

        logger.info(f"Connected to MongoDB {health['version']} - Database: {health['database']}")

        mongodb_service.create_indexes()

        logger.info("MongoDB indexes created successfully!")
        return 0

    except Exception as e:
        logger.error(f"Failed to create indexes: {e}")
        return 1
    finally:
        mongodb_service.close_connection()


if __name__ == "__main__":
    sys.exit(main())
