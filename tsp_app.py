import logging
import os
import sys
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional

import matplotlib.pyplot as plt
from matplotlib.backends.backend_qt5agg import FigureCanvasQTAgg as FigureCanvas
from PyQt5.QtCore import Qt, QTimer
from PyQt5.QtWidgets import (
    QApplication,
    QCheckBox,
    QGridLayout,
    QGroupBox,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QMainWindow,
    QMessageBox,
    QPushButton,
    QTabWidget,
    QVBoxLayout,
    QWidget,
)

from algorithms.ga_tsp import GAConfig, GeneticAlgorithmTSP
from algorithms.sa_tsp import SAConfig, SimulatedAnnealingTSP
from common.callbacks import CsvProgressLog
from common.errors import ConfigurationError
from common.rng import RNG
from common.workers import EngineWorker, StepGate
from problems.tsp import CityConfig, Problem
from utils.plot import draw_tour

logger = logging.getLogger(__name__)


class MplCanvas(FigureCanvas):
    """Thin wrapper to embed Matplotlib inside PyQt widgets."""

    def __init__(self, parent=None, width=5, height=4, dpi=100):
        self.fig, self.axes = plt.subplots(figsize=(width, height), dpi=dpi)
        super().__init__(self.fig)
        self.setParent(parent)
        self.fig.tight_layout()


@dataclass
class ParamField:
    name: str
    label: str
    default: str
    cast: Callable[[str], object]
    optional: bool = False


class TSPVisualizer(QMainWindow):
    """Simulated Annealing and the Genetic Algorithm racing on the same cities.

    A QTimer ticks a StepGate; each engine steps on its own worker thread and
    the canvases are redrawn from lock-protected snapshots.
    """

    def __init__(self, log_dir: str = "logs"):
        super().__init__()
        self.setWindowTitle("TSP: Simulated Annealing vs Genetic Algorithm")
        self.resize(1400, 760)

        self.log_dir = log_dir
        self.run_counter = 0
        self.problem: Optional[Problem] = None
        self.ga: Optional[GeneticAlgorithmTSP] = None
        self.sa: Optional[SimulatedAnnealingTSP] = None
        self.gate: Optional[StepGate] = None
        self.workers: List[EngineWorker] = []
        self.sinks: List[CsvProgressLog] = []

        self.tick_timer = QTimer(self)
        self.tick_timer.setInterval(30)
        self.tick_timer.timeout.connect(self._on_tick)

        self.param_config: Dict[str, List[ParamField]] = {
            "Cities": [
                ParamField("count", "Number of cities", "60", int),
                ParamField("seed", "Seed (blank = random)", "", int, True),
            ],
            "GA": [
                ParamField("pop_size", "Population (blank = auto)", "", int, True),
                ParamField("n_gen", "Generations (blank = auto)", "", int, True),
                ParamField("mutation_rate", "Mutation rate", "0.1", float),
                ParamField("tournament_k", "Tournament k (blank = auto)", "", int, True),
                ParamField("elitism", "Elitism (blank = auto)", "", int, True),
                ParamField("stall_limit", "Stall limit (blank = auto)", "", int, True),
            ],
            "SA": [
                ParamField("initial_temp", "Initial temperature", "1000", float),
                ParamField("final_temp", "Final temperature", "0.001", float),
                ParamField("alpha", "Alpha (blank = auto)", "", float, True),
                ParamField("neighbors_per_temp", "Neighbors per temperature", "5", int),
                ParamField("stall_limit", "Stall limit", "100000", int),
            ],
        }
        self.param_inputs: Dict[str, Dict[str, QLineEdit]] = {}

        self._setup_ui()
        self._restart(new_cities=True)

    def _setup_ui(self) -> None:
        central = QWidget()
        self.setCentralWidget(central)
        main_layout = QHBoxLayout(central)

        controls = QVBoxLayout()
        controls.setAlignment(Qt.AlignTop)

        self.param_tabs = QTabWidget()
        for name, fields in self.param_config.items():
            tab = QWidget()
            grid = QGridLayout()
            inputs = {}
            for row, field in enumerate(fields):
                edit = QLineEdit(field.default)
                inputs[field.name] = edit
                grid.addWidget(QLabel(field.label), row, 0)
                grid.addWidget(edit, row, 1)
            tab.setLayout(grid)
            self.param_inputs[name] = inputs
            self.param_tabs.addTab(tab, name)
        controls.addWidget(self.param_tabs)

        button_row = QHBoxLayout()
        self.restart_button = QPushButton("Restart (R)")
        self.restart_button.clicked.connect(lambda: self._restart(new_cities=False))
        self.new_cities_button = QPushButton("New cities")
        self.new_cities_button.clicked.connect(lambda: self._restart(new_cities=True))
        self.pause_button = QPushButton("Pause")
        self.pause_button.clicked.connect(self._toggle_pause)
        for button in (self.restart_button, self.new_cities_button, self.pause_button):
            button_row.addWidget(button)
        controls.addLayout(button_row)

        self.show_sa_box = QCheckBox("Show SA (1)")
        self.show_sa_box.setChecked(True)
        self.show_ga_box = QCheckBox("Show GA (2)")
        self.show_ga_box.setChecked(True)
        controls.addWidget(self.show_sa_box)
        controls.addWidget(self.show_ga_box)

        sa_group = QGroupBox("Simulated Annealing")
        sa_layout = QVBoxLayout()
        self.sa_labels = {key: QLabel() for key in ("temperature", "best", "current", "iterations", "state")}
        for label in self.sa_labels.values():
            sa_layout.addWidget(label)
        sa_group.setLayout(sa_layout)
        controls.addWidget(sa_group)

        ga_group = QGroupBox("Genetic Algorithm")
        ga_layout = QVBoxLayout()
        self.ga_labels = {key: QLabel() for key in ("generation", "best", "current", "stall", "state")}
        for label in self.ga_labels.values():
            ga_layout.addWidget(label)
        ga_group.setLayout(ga_layout)
        controls.addWidget(ga_group)

        compare_group = QGroupBox("Comparison")
        compare_layout = QVBoxLayout()
        self.winner_label = QLabel("N/A")
        self.diff_label = QLabel("N/A")
        compare_layout.addWidget(self.winner_label)
        compare_layout.addWidget(self.diff_label)
        compare_group.setLayout(compare_layout)
        controls.addWidget(compare_group)
        controls.addStretch()
        main_layout.addLayout(controls, 1)

        self.canvas_sa = MplCanvas(central, width=5, height=5)
        self.canvas_ga = MplCanvas(central, width=5, height=5)
        main_layout.addWidget(self.canvas_sa, 2)
        main_layout.addWidget(self.canvas_ga, 2)

    def _collect_params(self, group: str) -> Dict[str, object]:
        params = {}
        for field in self.param_config[group]:
            text = self.param_inputs[group][field.name].text().strip()
            if not text:
                if field.optional:
                    params[field.name] = None
                    continue
                raise ConfigurationError(f"'{field.label}' must not be empty.")
            try:
                params[field.name] = field.cast(text)
            except ValueError as exc:
                raise ConfigurationError(
                    f"Cannot convert '{field.label}' to {field.cast.__name__}: {text}"
                ) from exc
        return params

    @staticmethod
    def _apply_overrides(cfg, params: Dict[str, object]):
        overrides = {k: v for k, v in params.items() if v is not None}
        return replace(cfg, **overrides)

    def _restart(self, new_cities: bool) -> None:
        try:
            city_params = self._collect_params("Cities")
            problem = self.problem
            if new_cities or problem is None:
                cfg = CityConfig(count=city_params["count"], width=800, height=600)
                problem = Problem.random(cfg, RNG(city_params["seed"]))
            n = problem.n_cities
            ga_cfg = self._apply_overrides(GAConfig.scaled(n), self._collect_params("GA"))
            sa_cfg = self._apply_overrides(SAConfig.scaled(n), self._collect_params("SA"))
            ga_cfg.validate(n)
            sa_cfg.validate(n)
        except ConfigurationError as exc:
            self._show_error(str(exc))
            return

        self._stop_engines()
        self.problem = problem
        self.run_counter += 1
        self.sinks = [
            CsvProgressLog(os.path.join(self.log_dir, f"tsp_comparison{self.run_counter}_ga.csv"), "GA"),
            CsvProgressLog(os.path.join(self.log_dir, f"tsp_comparison{self.run_counter}_sa.csv"), "SA"),
        ]
        self.ga = GeneticAlgorithmTSP(self.problem.D, ga_cfg, on_step=self.sinks[0])
        self.sa = SimulatedAnnealingTSP(self.problem.D, sa_cfg, on_step=self.sinks[1])
        self.ga.initialize()
        self.sa.initialize()

        self.gate = StepGate()
        self.workers = [EngineWorker("GA", self.ga, self.gate), EngineWorker("SA", self.sa, self.gate)]
        for worker in self.workers:
            worker.start()
        self.pause_button.setText("Pause")
        self.tick_timer.start()
        self._redraw()

    def _stop_engines(self) -> None:
        self.tick_timer.stop()
        if self.gate is not None:
            self.gate.close()
        for worker in self.workers:
            worker.stop()
        self.workers = []
        for sink in self.sinks:
            sink.close()
        self.sinks = []
        self.ga = self.sa = self.gate = None

    def _toggle_pause(self) -> None:
        if self.tick_timer.isActive():
            self.tick_timer.stop()
            self.pause_button.setText("Resume")
        elif self.gate is not None:
            self.tick_timer.start()
            self.pause_button.setText("Pause")

    def _on_tick(self) -> None:
        if self.gate is None:
            return
        self.gate.tick()
        self._redraw()
        if self.ga.finished and self.sa.finished:
            self.tick_timer.stop()
            logger.info("both engines finished")

    def _redraw(self) -> None:
        if self.ga is None or self.sa is None:
            return
        coords = self.problem.coords
        sa_snap = self.sa.snapshot()
        ga_snap = self.ga.snapshot()

        if self.show_sa_box.isChecked():
            draw_tour(self.canvas_sa.axes, coords, sa_snap.best.order, "Simulated Annealing",
                      color="#d62828", current=sa_snap.current.order)
        else:
            self.canvas_sa.axes.clear()
            self.canvas_sa.axes.axis("off")
        self.canvas_sa.draw_idle()

        if self.show_ga_box.isChecked():
            draw_tour(self.canvas_ga.axes, coords, ga_snap.best.order, "Genetic Algorithm",
                      color="#2a9d8f", current=ga_snap.current_best.order)
        else:
            self.canvas_ga.axes.clear()
            self.canvas_ga.axes.axis("off")
        self.canvas_ga.draw_idle()

        self.sa_labels["temperature"].setText(f"Temperature: {sa_snap.temperature:.2e}")
        self.sa_labels["best"].setText(f"Best Distance: {sa_snap.best.length:.1f}")
        self.sa_labels["current"].setText(f"Current Distance: {sa_snap.current.length:.1f}")
        self.sa_labels["iterations"].setText(f"Iterations: {sa_snap.iterations}")
        self.sa_labels["state"].setText("FINISHED" if sa_snap.finished else "")

        self.ga_labels["generation"].setText(f"Generation: {ga_snap.generation}")
        self.ga_labels["best"].setText(f"Best Distance: {ga_snap.best.length:.1f}")
        self.ga_labels["current"].setText(f"Current Distance: {ga_snap.current_best.length:.1f}")
        self.ga_labels["stall"].setText(f"Stall Counter: {ga_snap.stall}")
        self.ga_labels["state"].setText("FINISHED" if ga_snap.finished else "")

        if sa_snap.best.length < ga_snap.best.length:
            self.winner_label.setText("SA is winning!")
        elif ga_snap.best.length < sa_snap.best.length:
            self.winner_label.setText("GA is winning!")
        else:
            self.winner_label.setText("Tie!")
        self.diff_label.setText(f"Difference: {abs(sa_snap.best.length - ga_snap.best.length):.1f}")

    def keyPressEvent(self, event) -> None:
        key = event.key()
        if key == Qt.Key_R:
            self._restart(new_cities=False)
        elif key == Qt.Key_1:
            self.show_sa_box.setChecked(not self.show_sa_box.isChecked())
        elif key == Qt.Key_2:
            self.show_ga_box.setChecked(not self.show_ga_box.isChecked())
        else:
            super().keyPressEvent(event)

    def closeEvent(self, event) -> None:
        self._stop_engines()
        super().closeEvent(event)

    def _show_error(self, message: str) -> None:
        QMessageBox.critical(self, "Error", message)


def main():
    logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(name)s: %(message)s",
                        datefmt="%H:%M:%S")
    app = QApplication(sys.argv)
    window = TSPVisualizer()
    window.show()
    sys.exit(app.exec_())


if __name__ == "__main__":
    main()
