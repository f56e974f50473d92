"""
visualizer.py — Live Density Viewer
====================================
Shows the 2D density field of a GridSolver as an image, one solver frame
per animation frame, with live stats in the title.

Reads solver state only between frames; it never touches the grids while
a frame is being simulated. Uses matplotlib FuncAnimation.
"""

import numpy as np
import matplotlib.pyplot as plt
import matplotlib.animation as animation
from matplotlib.colors import LinearSegmentedColormap

# Custom smoke colormap: black → orange → white
SMOKE_COLORS = ["#000000", "#1a0a00", "#ff6a00", "#ffffff"]
smoke_cmap = LinearSegmentedColormap.from_list("smoke", SMOKE_COLORS)


class DensityViewer:
    """
    Real-time viewer of a 2D grid solver.

    Usage (standalone):
        from hybridfluid import GridSolver
        from visualizer import DensityViewer

        solver = GridSolver(size=(64, 64), grid_spacing=1.0 / 64)
        solver.density[32, 8] = 5.0
        DensityViewer(solver).run()  # Opens live window
    """

    def __init__(self, solver, on_frame=None, vmax: float = 2.0):
        """
        Args:
            solver   : GridSolver instance (2D)
            on_frame : Optional callback(solver) run before each frame (e.g. add a source)
            vmax     : Density mapped to white
        """
        if solver.dimension != 2:
            raise ValueError(f"DensityViewer shows 2D solvers only, got {solver.dimension}D")
        self.solver = solver
        self.on_frame = on_frame
        self.vmax = vmax
        self._setup_figure()

    def _setup_figure(self):
        """Initialize the matplotlib figure."""
        self.fig, self.ax = plt.subplots(figsize=(6, 6))
        self.fig.patch.set_facecolor('#0a0a0a')

        ax = self.ax
        ax.set_facecolor('#0a0a0a')
        ax.set_xticks([])
        ax.set_yticks([])
        for spine in ax.spines.values():
            spine.set_edgecolor('#333333')

        lower = self.solver.grid_origin + self.solver.grid_spacing
        upper = lower + np.array(self.solver.size) * self.solver.grid_spacing
        self.img = ax.imshow(
            self._interior().T, cmap=smoke_cmap,
            vmin=0, vmax=self.vmax,
            interpolation='bilinear',
            origin='lower',
            extent=(lower[0], upper[0], lower[1], upper[1]),
            aspect='equal'
        )

        self.title_text = self.fig.suptitle(
            "Grid Fluid — Frame 0",
            color='#cccccc', fontsize=10, fontfamily='monospace'
        )
        plt.tight_layout()

    def _interior(self) -> np.ndarray:
        # Drop the ghost ring; x is axis 0, so the caller transposes for imshow
        return self.solver.density.data[1:-1, 1:-1]

    def update(self, frame_num):
        """Called by FuncAnimation each frame. Steps the solver and refreshes the image."""
        if self.on_frame is not None:
            self.on_frame(self.solver)

        self.solver.advance_single_frame()
        metrics = self.solver.last_step_metrics

        self.img.set_data(self._interior().T)
        self.title_text.set_text(
            f"Grid Fluid — Frame {self.solver.frame} | "
            f"{metrics.get('total_ms', 0.0):.1f}ms/sub-step | "
            f"div_max={metrics.get('divergence_max', 0.0):.5f}"
        )
        return [self.img, self.title_text]

    def run(self, fps: int = 30, frames: int = 1000):
        """
        Start the live animation window.

        Args:
            fps    : Target animation frame rate
            frames : Total frames to render
        """
        interval_ms = 1000 // fps
        self.anim = animation.FuncAnimation(
            self.fig,
            self.update,
            frames=frames,
            interval=interval_ms,
            blit=False
        )
        plt.show()

    def save_gif(self, path: str = "density.gif", fps: int = 30, frames: int = 120):
        """Save animation as a GIF."""
        print(f"Rendering {frames} frames to {path}...")
        self.anim = animation.FuncAnimation(
            self.fig, self.update, frames=frames, interval=1000 // fps, blit=False
        )
        writer = animation.PillowWriter(fps=fps)
        self.anim.save(path, writer=writer)
        print(f"Saved: {path}")
