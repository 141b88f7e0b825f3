"""
STOCKCOUNT Voice Session Server

TCP server speaking the newline-delimited JSON session protocol. Each
connection gets its own SessionPipeline, registered in the server's
SessionRegistry for the lifetime of the connection.

The speech recognizer runs on the client side; this server receives its
``transcript`` callbacks and the client's confirm/reject/correct/undo
commands, and sends session events back.
"""

import asyncio
import logging
import uuid
from typing import Any, Dict, Optional, Set

from stockcount.config import StockcountConfig
from stockcount.session_channel import ClientCommand, SessionEventType
from stockcount.session_pipeline import SessionPipeline, create_session_pipeline
from stockcount.session_registry import SessionRegistry

from services.catalog.embeddings import create_embedder
from services.catalog.item_resolver import ItemResolver
from services.catalog.similarity_search import CatalogIndex, HttpSimilaritySearch
from services.inventory.store import InventoryStore
from services.nlp.command_extractor import CommandExtractor, create_command_extractor

from .protocol import MessageType, ProtocolMessage, read_message, write_message

logger = logging.getLogger("stockcount.server")


class InventorySessionServer:
    """
    Voice inventory session server.

    Shares one extractor, resolver and store across all connections; every
    connection gets a private pipeline.
    """

    DEFAULT_PORT = 10500

    def __init__(
        self,
        config: StockcountConfig,
        store: InventoryStore,
        extractor: CommandExtractor,
        resolver: ItemResolver,
        host: Optional[str] = None,
        port: Optional[int] = None,
    ):
        """
        Initialize the session server.

        Args:
            config: Loaded configuration
            store: Connected inventory store
            extractor: Command extractor shared by all sessions
            resolver: Item resolver shared by all sessions
            host: Host to bind to (config.server.host if None)
            port: Port to listen on (config.server.port if None)
        """
        self.config = config
        self.store = store
        self.extractor = extractor
        self.resolver = resolver
        self.host = host or config.server.host
        self.port = port if port is not None else config.server.port
        self.registry = SessionRegistry()
        self._server: Optional[asyncio.AbstractServer] = None
        self._writers: Set[asyncio.StreamWriter] = set()

    @property
    def is_running(self) -> bool:
        return self._server is not None and self._server.is_serving()

    @property
    def bound_port(self) -> Optional[int]:
        if self._server is None or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    async def handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ):
        """
        Serve one connected client until it disconnects.

        Args:
            reader: Stream reader for client connection
            writer: Stream writer for client connection
        """
        client_addr = writer.get_extra_info("peername")
        session_id = uuid.uuid4().hex[:12]

        async def send(event_type: str, data: Dict[str, Any]):
            await write_message(writer, ProtocolMessage.event(event_type, data))

        pipeline = create_session_pipeline(
            session_id, self.config, self.extractor, self.resolver, self.store, emit=send
        )
        self.registry.register(pipeline)
        self._writers.add(writer)
        logger.info(f"Client connected: {client_addr} (session {session_id})")

        try:
            await pipeline.start()
            await send(SessionEventType.SESSION_STARTED.value, {"sessionId": session_id})

            while True:
                try:
                    message = await read_message(reader)
                except ValueError as e:
                    logger.warning(f"[{session_id}] Bad message from {client_addr}: {e}")
                    await write_message(writer, ProtocolMessage.error(f"Invalid message: {e}", "BadMessage"))
                    continue

                if message is None:
                    logger.debug(f"Client disconnected: {client_addr}")
                    break

                await self._dispatch(pipeline, message)

        except asyncio.CancelledError:
            logger.debug(f"Client handler cancelled: {client_addr}")
        except ConnectionError as e:
            logger.info(f"Connection lost for {client_addr}: {e}")
        finally:
            self.registry.unregister(session_id)
            self._writers.discard(writer)
            await pipeline.close()
            try:
                writer.close()
                await writer.wait_closed()
            except (ConnectionError, OSError):
                pass
            logger.info(f"Session {session_id} ended ({len(self.registry)} active)")

    async def _dispatch(self, pipeline: SessionPipeline, message: ProtocolMessage):
        if message.type is MessageType.TRANSCRIPT:
            transcript = message.transcript()
            await pipeline.on_transcript(transcript.text, transcript.is_final, transcript.confidence)
        elif message.type.is_client_command:
            pipeline.submit(ClientCommand(kind=message.type.value, payload=message.data))
        else:
            await pipeline.emit(SessionEventType.ERROR, {
                "message": f"Unexpected message type: {message.type.value}",
                "code": "BadMessage",
            })

    async def start(self):
        """Bind and serve until cancelled."""
        await self.start_background()
        async with self._server:
            await self._server.serve_forever()

    async def start_background(self):
        """Bind and return; connections are served on the running loop."""
        self._server = await asyncio.start_server(self.handle_client, self.host, self.port)
        addr = self._server.sockets[0].getsockname()
        logger.info(f"Inventory session server listening on {addr}")

    async def stop(self):
        """Stop accepting connections and close every live session."""
        if self._server:
            self._server.close()
        for writer in list(self._writers):
            writer.close()
        await self.registry.close_all()
        if self._server:
            await self._server.wait_closed()
            self._server = None
        logger.info("Inventory session server stopped")


async def build_server(
    config: StockcountConfig,
    seed_catalog: bool = False,
    host: Optional[str] = None,
    port: Optional[int] = None,
) -> InventorySessionServer:
    """
    Wire the store, extractor and resolver described by ``config``.

    Args:
        config: Loaded configuration
        seed_catalog: Populate an empty store with the default catalog
        host: Overrides config.server.host
        port: Overrides config.server.port
    """
    store = InventoryStore(config.inventory.database_path)
    store.connect()
    if seed_catalog:
        store.populate_default_catalog()

    embedder = create_embedder(config.catalog)
    if config.catalog.search_url:
        search = HttpSimilaritySearch(
            config.catalog.search_url,
            embedder,
            api_key=config.catalog.search_api_key,
            floor=config.catalog.similarity_floor,
            timeout=config.catalog.search_timeout_seconds,
        )
        logger.info(f"Using remote similarity search at {config.catalog.search_url}")
    else:
        search = CatalogIndex(embedder, floor=config.catalog.similarity_floor)
        await search.rebuild(store.list_items())

    resolver = ItemResolver(
        search,
        top_k=config.catalog.top_k,
        acceptance_threshold=config.catalog.acceptance_threshold,
    )
    extractor = create_command_extractor(config.llm)

    return InventorySessionServer(config, store, extractor, resolver, host=host, port=port)
