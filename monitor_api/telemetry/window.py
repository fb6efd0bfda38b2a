"""Ventanas de agregación por dispositivo.

Cada dispositivo tiene su propia ventana de capacidad fija. Al llenarse,
la ventana se reduce a un único `AggregatedReading` (media por campo,
redondeada a 2 decimales) y se vacía en la misma sección crítica, de modo
que ningún append puede intercalarse con el reduce.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from typing import Dict, List, Optional

from prometheus_client import Gauge

from .models import AggregatedReading, SensorReading

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 12
DEFAULT_MAX_DEVICES = 1000

TELEMETRY_WINDOW_DEVICES = Gauge(
    "telemetry_window_devices",
    "Devices with an open aggregation window",
)


class AggregationWindow:
    """Buffer acotado de lecturas recientes para un dispositivo.

    No es thread-safe por sí solo: `WindowRegistry` serializa los accesos.
    """

    def __init__(self, device_key: str, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.device_key = device_key
        self.capacity = int(capacity)
        self._buffer: List[SensorReading] = []

    def __len__(self) -> int:
        return len(self._buffer)

    def push(self, reading: SensorReading) -> Optional[AggregatedReading]:
        """Añade la lectura; si se alcanza la capacidad, reduce y vacía."""
        self._buffer.append(reading)
        if len(self._buffer) < self.capacity:
            return None

        aggregate = self._reduce()
        self._buffer = []
        return aggregate

    def _reduce(self) -> AggregatedReading:
        n = len(self._buffer)
        return AggregatedReading(
            temperature=round(sum(r.temperature for r in self._buffer) / n, 2),
            humidity=round(sum(r.humidity for r in self._buffer) / n, 2),
            gas_level=round(sum(r.gas_level for r in self._buffer) / n, 2),
            device_key=self.device_key,
            sample_count=n,
        )


class WindowRegistry:
    """Mapa device_key -> AggregationWindow, con un lock por ventana.

    Dispositivos distintos nunca comparten buffer ni lock. El número de
    ventanas está acotado por `max_devices`: al llegar un dispositivo nuevo
    con el registro lleno se libera la ventana menos usada, prefiriendo
    las que no tienen lecturas pendientes.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY, max_devices: int = DEFAULT_MAX_DEVICES) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        if max_devices < 1:
            raise ValueError(f"max_devices must be >= 1, got {max_devices}")
        self._capacity = int(capacity)
        self._max_devices = int(max_devices)
        # Orden LRU: el primero es el menos usado
        self._windows: "OrderedDict[str, AggregationWindow]" = OrderedDict()
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self._aggregates_emitted = 0
        self._evicted = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    def _window_for(self, device_key: str) -> tuple[AggregationWindow, threading.Lock]:
        with self._registry_lock:
            window = self._windows.get(device_key)
            if window is not None:
                self._windows.move_to_end(device_key)
                return window, self._locks[device_key]

            if len(self._windows) >= self._max_devices:
                self._evict_one()
            window = AggregationWindow(device_key, self._capacity)
            self._windows[device_key] = window
            self._locks[device_key] = threading.Lock()
            TELEMETRY_WINDOW_DEVICES.set(len(self._windows))
            logger.info("[WINDOW] New window device=%s capacity=%d", device_key, self._capacity)
            return window, self._locks[device_key]

    def _evict_one(self) -> None:
        """Libera una ventana. Se llama con `_registry_lock` tomado."""
        victim: Optional[str] = None
        victim_pending = 0
        for key, window in self._windows.items():
            lock = self._locks[key]
            # Una ventana con push en curso no se toca
            if not lock.acquire(blocking=False):
                continue
            try:
                pending = len(window)
            finally:
                lock.release()
            if victim is None:
                victim, victim_pending = key, pending
            if pending == 0:
                victim, victim_pending = key, 0
                break

        if victim is None:
            victim = next(iter(self._windows))
            victim_pending = len(self._windows[victim])

        del self._windows[victim]
        del self._locks[victim]
        self._evicted += 1
        if victim_pending:
            logger.warning(
                "[WINDOW] Device limit reached (%d), dropping device=%s with %d pending readings",
                self._max_devices, victim, victim_pending,
            )
        else:
            logger.info("[WINDOW] Device limit reached (%d), released idle device=%s", self._max_devices, victim)

    def push(self, device_key: str, reading: SensorReading) -> Optional[AggregatedReading]:
        window, lock = self._window_for(device_key)
        with lock:
            aggregate = window.push(reading)
        if aggregate is not None:
            with self._registry_lock:
                self._aggregates_emitted += 1
            logger.debug(
                "[WINDOW] Window complete device=%s temp=%.2f hum=%.2f gas=%.2f",
                device_key,
                aggregate.temperature,
                aggregate.humidity,
                aggregate.gas_level,
            )
        return aggregate

    def pending(self, device_key: str) -> int:
        """Número de lecturas en buffer para el dispositivo (0 si no existe)."""
        with self._registry_lock:
            window = self._windows.get(device_key)
            lock = self._locks.get(device_key)
        if window is None or lock is None:
            return 0
        with lock:
            return len(window)

    def stats(self) -> dict:
        with self._registry_lock:
            devices = list(self._windows.keys())
            emitted = self._aggregates_emitted
            evicted = self._evicted
        return {
            "capacity": self._capacity,
            "devices": {key: self.pending(key) for key in devices},
            "aggregates_emitted": emitted,
            "evicted": evicted,
        }
