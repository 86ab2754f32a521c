"""Vectorization runner entry point.

Builds the daily segments of every chat and embeds everything that has no
vector yet. With --revectorize all vectors are cleared and recomputed, which
is required after swapping the embedding model.

Usage:
    python -m services.chat_vectorization.vectorize_runner [--revectorize]
"""

import argparse
import asyncio

from services.chat_segments.SegmentService import SegmentService
from services.chat_vectorization.VectorizationService import VectorizationService
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.store.StoreClientManager import StoreClientManager
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging


async def main(revectorize: bool = False) -> bool:
    """Run segmentation and (re-)vectorization once.

    Returns:
        bool: True if the run succeeded.
    """
    logger = setup_logging()
    config = HelperConfig(logger=logger)
    embed_client = EmbedClientManager(helper_config=config).get_client()
    store_client = StoreClientManager(helper_config=config).get_client()

    # a new in-process store is always empty
    if not store_client.is_persistent():
        logger.error(
            "Store engine '%s' does not persist data, nothing to vectorize. Set STORE_ENGINE to a persistent engine.",
            store_client.get_engine_name(),
        )
        return False

    try:
        # both clients are required, abort if one of them fails to boot
        try:
            await embed_client.boot()
            await embed_client.do_healthcheck()
        except Exception as e:
            logger.error("Error booting client %s: %s. Aborting.", embed_client.get_display_name(), e)
            return False
        try:
            await store_client.boot()
            await store_client.do_healthcheck()
        except Exception as e:
            logger.error("Error booting client %s: %s. Aborting.", store_client.get_display_name(), e)
            return False

        segment_service = SegmentService(helper_config=config, store_client=store_client, embed_client=embed_client)
        vectorization_service = VectorizationService(
            helper_config=config, store_client=store_client, embed_client=embed_client
        )

        await segment_service.create_segments_for_all_chats()
        if revectorize:
            result = await vectorization_service.revectorize_all()
        else:
            result = await vectorization_service.vectorize_all_unprocessed()
        logger.info(result.summary(), color="green" if result.success else "red")

        segment_stats = await vectorization_service.get_segment_stats()
        logger.info(
            "Segments: %d total, %d with vectors (%.1f%%)",
            segment_stats.total_segments,
            segment_stats.segments_with_vectors,
            segment_stats.vectorization_percentage,
        )
        return result.success
    finally:
        await embed_client.close()
        await store_client.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Segment and vectorize all chats.")
    parser.add_argument("--revectorize", action="store_true", help="clear and recompute all vectors")
    args = parser.parse_args()
    raise SystemExit(0 if asyncio.run(main(revectorize=args.revectorize)) else 1)
