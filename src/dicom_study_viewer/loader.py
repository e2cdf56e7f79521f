"""loader.py — Batch loading of files into the state store.

A batch is all-or-nothing: if any file cannot be read or parsed, no study
is installed, the remaining work is cancelled, and the first error is
re-raised (and written to the store's ``error`` field).  The store's
``loading`` flag is held for the whole batch and always released.
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, List

from .assembler import assemble_study
from .config import ViewerConfig
from .errors import ViewerError
from .io import MetadataExtractor, read_file_bytes
from .models import InstanceRecord, Study
from .viewer_state import ViewerStateStore

logger = logging.getLogger(__name__)


class StudyLoader:
    """Read, extract, assemble and install a batch of files.

    Loaded studies are kept in an in-memory registry keyed by study id for
    the lifetime of the loader.

    Example::

        loader = StudyLoader(store)
        study = await loader.load_files(["a.dcm", "b.dcm"])
    """

    def __init__(
        self,
        store: ViewerStateStore,
        extractor: MetadataExtractor | None = None,
        config: ViewerConfig | None = None,
    ) -> None:
        self.store = store
        self.extractor = extractor if extractor is not None else MetadataExtractor()
        self.config = config if config is not None else ViewerConfig()
        self._studies: Dict[str, Study] = {}

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------
    async def load_record(self, path: Any) -> InstanceRecord:
        """Read one file and extract its metadata record."""
        buffer = await read_file_bytes(path)
        return self.extractor.extract(buffer, pixel_ref=str(path))

    async def read_records(self, paths: Iterable[Any]) -> List[InstanceRecord]:
        """Extract records for *paths* concurrently, in input order.

        At most ``config.max_concurrent_reads`` files are in flight.  On the
        first failure every other task is cancelled and the error raised.
        """
        semaphore = asyncio.Semaphore(max(1, self.config.max_concurrent_reads))

        async def bounded(path: Any) -> InstanceRecord:
            async with semaphore:
                return await self.load_record(path)

        tasks = [asyncio.ensure_future(bounded(path)) for path in paths]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def load_files(self, paths: Iterable[Any]) -> Study:
        """Load *paths* as one study and make it current.

        The first instance of the first series is selected.

        Raises:
            FileReadError, MetadataParseError, EmptyInputError: The first
                error encountered; the store is left without a new study.
        """
        paths = list(paths)
        logger.info("Loading %d file(s)", len(paths))
        with self.store.loading_scope():
            self.store.set_error(None)
            try:
                records = await self.read_records(paths)
                study = assemble_study(records)
            except ViewerError as exc:
                self.store.set_error(str(exc))
                raise

            self._studies[study.id] = study
            first = study.series[0].instances[0]
            self.store.set_study(study, series_id=study.series[0].id, instance=first)
        return study

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------
    def get_loaded_studies(self) -> List[Study]:
        return list(self._studies.values())

    def get_study(self, study_id: str) -> Study | None:
        return self._studies.get(study_id)

    def show_study(self, study_id: str) -> bool:
        """Install a previously loaded study; ``False`` if unknown."""
        study = self._studies.get(study_id)
        if study is None:
            return False
        self.store.set_study(study)
        return True

    def clear_studies(self) -> None:
        """Forget every loaded study and remove the hierarchy from the store."""
        self._studies.clear()
        self.store.set_study(None)
