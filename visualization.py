# visualization.py
"""
Handles the visualization of the flow field simulation using Pygame.
"""
import logging
import time
import pygame
import numpy as np
from typing import List, Optional, Tuple

from constants import (
    ARROW_COLOR, ARROW_MIN_MAGNITUDE, ARROW_REDRAW_INTERVAL, ARROW_SPACING,
    BACKGROUND_COLOR, CLICK_BURST_SIZE, DRAG_BURST_SIZE, FPS, FULLSCREEN,
    UI_BACKGROUND_ALPHA, UI_PANEL_WIDTH, WINDOW_SIZE,
)

# Forward reference for type hinting to avoid circular import
from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from simulation import Simulation


# --- Data Contracts ---
#
# class Visualizer:
#   - __init__(self, vis_params: Optional[dict] = None):
#     - Inputs:
#       - vis_params: the "visualization" config section.
#         - "decay": float in [0, 1), how long trails persist on screen
#         - "show_field": bool, draw the field arrows
#     - Side Effects: Initializes Pygame and creates a display surface.
#     - Exposes sim_width / sim_height, the drawable area the simulation
#       must be built for.
#
#   - draw_segment(self, start, end, color, width) -> None:
#     - The draw-segment callback handed to Simulation.draw_trails.
#
#   - draw(self, simulation: "Simulation") -> bool:
#     - Outputs: False if the user has quit, True otherwise.
#     - Side Effects: Renders trails, arrows and UI; handles input and
#       forwards it to the simulation (pointer, bursts, new field, ...).

KEY_HELP = [
    ("Space", "New field"),
    ("R", "Reset particles"),
    ("C", "Clear trails"),
    ("V", "Toggle field arrows"),
    ("S / L", "Save / load function"),
    ("D", "Delete saved function"),
    ("Up / Down", "Flow intensity"),
    ("Left / Right", "Scale"),
    ("Click", "Spawn particles"),
]


class Visualizer:
    """
    Renders particle trails and the field, and provides the interactive controls.
    """
    def __init__(self, vis_params: Optional[dict] = None):
        """
        Initializes Pygame and the display window.
        """
        pygame.init()
        pygame.font.init()

        vis_params = vis_params if vis_params is not None else {}

        if FULLSCREEN:
            display_info = pygame.display.Info()
            width, height = display_info.current_w, display_info.current_h
            self.screen = pygame.display.set_mode((width, height), pygame.FULLSCREEN)
        else:
            width, height = WINDOW_SIZE[0] + UI_PANEL_WIDTH, WINDOW_SIZE[1]
            self.screen = pygame.display.set_mode((width, height))

        # The simulation area is the total width minus the UI panel
        self.sim_width = width - UI_PANEL_WIDTH
        self.sim_height = height

        self.sim_surface = pygame.Surface((self.sim_width, self.sim_height))
        self.sim_surface.fill(BACKGROUND_COLOR)
        # Blitted every frame over the previous one; its alpha sets how fast trails fade.
        self.fade_surface = pygame.Surface((self.sim_width, self.sim_height), pygame.SRCALPHA)
        self.arrow_surface = pygame.Surface((self.sim_width, self.sim_height), pygame.SRCALPHA)

        self.ui_panel_surface = pygame.Surface((UI_PANEL_WIDTH, self.sim_height), pygame.SRCALPHA)
        self.ui_panel_surface.fill((40, 40, 40, UI_BACKGROUND_ALPHA))

        pygame.display.set_caption("Flow Field")
        self.clock = pygame.time.Clock()

        try:
            self.heading_font = pygame.font.SysFont("Consolas", 15, bold=True)
            self.row_font = pygame.font.SysFont("Consolas", 13)
        except pygame.error:
            logging.warning("Consolas font not found, using the Pygame default font.")
            self.heading_font = pygame.font.Font(None, 20)
            self.row_font = pygame.font.Font(None, 17)

        # --- Panel palette ---
        self.heading_color = (235, 240, 250)
        self.label_color = (150, 165, 185)
        self.value_color = (235, 240, 250)
        self.rule_color = (70, 85, 105)

        self.show_field = bool(vis_params.get('show_field', True))
        self.decay = 0.95
        self.set_decay(float(vis_params.get('decay', 0.95)))
        self.frame_count = 0
        self.status_message = ""

        logging.info(f"Visualizer initialized with Pygame display ({width}x{height}).")

    def set_decay(self, decay: float) -> None:
        """Trail persistence: 0 wipes every frame, values near 1 leave long exposures."""
        self.decay = float(np.clip(decay, 0.0, 0.999))
        alpha = int(round(255 * (1.0 - self.decay)))
        self.fade_surface.fill((*BACKGROUND_COLOR, max(1, min(255, alpha))))

    def tick(self) -> float:
        """Waits for the next frame and returns the elapsed time in seconds."""
        return self.clock.tick(FPS) / 1000.0

    def draw_segment(self, start: Tuple[float, float], end: Tuple[float, float],
                     color: Tuple[int, int, int], width: float) -> None:
        pygame.draw.line(self.sim_surface, color, start, end, max(1, int(round(width))))

    def _redraw_field_arrows(self, simulation: "Simulation") -> None:
        """Samples the field on a sparse grid and draws one arrow per sample."""
        self.arrow_surface.fill((0, 0, 0, 0))
        points, vectors = simulation.evaluator.sample_grid(ARROW_SPACING, simulation.time, simulation.pointer)
        magnitudes = np.hypot(vectors[:, 0], vectors[:, 1])
        for (x, y), (vx, vy), magnitude in zip(points, vectors, magnitudes):
            if magnitude <= ARROW_MIN_MAGNITUDE:
                continue
            length = float(np.clip(magnitude * 0.1, 3, 15))
            end_x = x + vx / magnitude * length
            end_y = y + vy / magnitude * length
            # Stronger flow draws more opaque arrows
            alpha = int(np.clip(20 + magnitude / 50 * 60, 20, 80))
            color = (*ARROW_COLOR, alpha)
            pygame.draw.line(self.arrow_surface, color, (x, y), (end_x, end_y))

            angle = np.arctan2(vy, vx)
            for side in (-0.4, 0.4):
                head = (end_x - 2 * np.cos(angle + side), end_y - 2 * np.sin(angle + side))
                pygame.draw.line(self.arrow_surface, color, (end_x, end_y), head)

    def _panel_sections(self, simulation: "Simulation") -> List[Tuple[str, List[Tuple[str, str]]]]:
        particles = simulation.particles
        evaluator = simulation.evaluator
        field_rows = [
            ("seed", "-" if simulation.seed is None else str(simulation.seed)),
            ("function", simulation.function_name or "-"),
            ("mode", simulation.field_mode),
            ("flow", f"{evaluator.flow_intensity:.1f}x"),
            ("scale", f"{evaluator.scale:.1f}"),
            ("decay", f"{self.decay:.2f}"),
        ]
        flow = simulation.flow_at_pointer()
        run_rows = [
            ("particles", f"{particles.count}/{particles.target_count}"),
            ("time", f"{simulation.time:.1f}s"),
            ("fps", f"{self.clock.get_fps():.0f}"),
            ("pointer flow", f"{flow.x:+.1f}, {flow.y:+.1f}"),
        ]
        sections = [("Field", field_rows), ("Run", run_rows), ("Keys", KEY_HELP)]
        if self.status_message:
            sections.append(("Status", [("", self.status_message)]))
        return sections

    def _fit(self, text: str, font: pygame.font.Font, max_width: float) -> str:
        """Shortens text with a trailing '..' until it fits max_width."""
        if font.size(text)[0] <= max_width:
            return text
        while text and font.size(text + "..")[0] > max_width:
            text = text[:-1]
        return text + ".."

    def _draw_panel(self, simulation: "Simulation") -> None:
        """Draws the parameter readout and key bindings down the right-hand panel."""
        left = self.sim_width + 16
        right = self.sim_width + UI_PANEL_WIDTH - 16
        row_height = self.row_font.get_linesize() + 2
        y = 16

        for heading, rows in self._panel_sections(simulation):
            self.screen.blit(self.heading_font.render(heading, True, self.heading_color), (left, y))
            y += self.heading_font.get_linesize()
            pygame.draw.line(self.screen, self.rule_color, (left, y), (right, y))
            y += 4
            for label, value in rows:
                label_surface = self.row_font.render(label, True, self.label_color)
                self.screen.blit(label_surface, (left, y))
                room = right - left - label_surface.get_width() - 8
                value_surface = self.row_font.render(self._fit(value, self.row_font, room), True, self.value_color)
                self.screen.blit(value_surface, value_surface.get_rect(topright=(right, y)))
                y += row_height
            y += 10

    def _in_sim_area(self, pos: Tuple[int, int]) -> bool:
        return pos[0] < self.sim_width

    def _handle_key(self, key: int, simulation: "Simulation") -> None:
        if key == pygame.K_SPACE:
            simulation.new_field()
            self.sim_surface.fill(BACKGROUND_COLOR)
            self.status_message = f"Share: {simulation.share_code(self.decay)}"
            logging.info(f"Share code: {simulation.share_code(self.decay)}")
        elif key == pygame.K_r:
            simulation.reset_particles()
            logging.info("Particles reset by user.")
        elif key == pygame.K_c:
            simulation.clear_trails()
            self.sim_surface.fill(BACKGROUND_COLOR)
        elif key == pygame.K_v:
            self.show_field = not self.show_field
        elif key == pygame.K_UP:
            simulation.set_flow_intensity(simulation.evaluator.flow_intensity + 0.5)
        elif key == pygame.K_DOWN:
            simulation.set_flow_intensity(max(0.0, simulation.evaluator.flow_intensity - 0.5))
        elif key == pygame.K_RIGHT:
            simulation.set_scale(simulation.evaluator.scale + 0.5)
        elif key == pygame.K_LEFT:
            simulation.set_scale(max(0.5, simulation.evaluator.scale - 0.5))
        elif key == pygame.K_s:
            name = f"seed-{simulation.seed}" if simulation.seed is not None else time.strftime("field-%Y%m%d-%H%M%S")
            try:
                simulation.save_function(name)
                self.status_message = f"Saved '{name}'"
            except ValueError as e:
                logging.warning(f"Could not save function: {e}")
                self.status_message = "Nothing to save"
        elif key == pygame.K_l:
            try:
                name = simulation.store.latest() if simulation.store else None
                field = simulation.load_function(name) if name else None
            except (KeyError, ValueError) as e:
                logging.warning(f"Could not load a saved function: {e}")
                name = field = None
            if name is None:
                self.status_message = "No saved functions"
            elif field is None:
                self.status_message = f"'{name}' is corrupted"
            else:
                self.sim_surface.fill(BACKGROUND_COLOR)
                self.status_message = f"Loaded '{name}'"
        elif key == pygame.K_d:
            try:
                name = simulation.delete_function() if simulation.store else None
            except ValueError as e:
                logging.warning(f"Could not delete a saved function: {e}")
                name = None
            if name is None:
                self.status_message = "Nothing to delete"
            else:
                remaining = len(simulation.saved_functions())
                self.status_message = f"Deleted '{name}' ({remaining} left)"

    def draw(self, simulation: "Simulation") -> bool:
        """
        Draws all trails and UI, and handles events.

        Returns:
            bool: False if the simulation should exit, True otherwise.
        """
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                logging.info("Quit event received. Shutting down visualizer.")
                return False

            if event.type == pygame.KEYDOWN:
                if event.key == pygame.K_ESCAPE:
                    logging.info("ESC key pressed. Shutting down visualizer.")
                    return False
                self._handle_key(event.key, simulation)

            if event.type == pygame.MOUSEBUTTONDOWN and event.button == 1:
                if self._in_sim_area(event.pos):
                    simulation.spawn_burst(event.pos, CLICK_BURST_SIZE)

            if event.type == pygame.MOUSEMOTION and self._in_sim_area(event.pos):
                simulation.set_pointer(*event.pos)
                if event.buttons[0]:
                    simulation.spawn_burst(event.pos, DRAG_BURST_SIZE)

        # 1. Fade the previous frame instead of clearing it, leaving exposure trails.
        self.sim_surface.blit(self.fade_surface, (0, 0))

        # 2. Trails, through the simulation's draw-segment callback
        simulation.draw_trails(self.draw_segment)

        # 3. Field arrows, resampled every few frames
        self.frame_count += 1
        if self.show_field and (self.frame_count - 1) % ARROW_REDRAW_INTERVAL == 0:
            self._redraw_field_arrows(simulation)

        self.screen.blit(self.sim_surface, (0, 0))
        if self.show_field:
            self.screen.blit(self.arrow_surface, (0, 0))

        # 4. UI panel
        self.screen.fill(BACKGROUND_COLOR, pygame.Rect(self.sim_width, 0, UI_PANEL_WIDTH, self.sim_height))
        self.screen.blit(self.ui_panel_surface, (self.sim_width, 0))
        self._draw_panel(simulation)

        pygame.display.flip()
        return True

    def close(self):
        """Shuts down Pygame."""
        pygame.font.quit()
        pygame.quit()
