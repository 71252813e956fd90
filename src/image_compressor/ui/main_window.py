from __future__ import annotations

import io
import logging
from pathlib import Path
from tkinter import filedialog, messagebox

import customtkinter as ctk
from PIL import Image

from image_compressor.core.config import Config
from image_compressor.core.errors import CompressionError
from image_compressor.core.export import build_download_name, format_file_size, save_result
from image_compressor.core.loader import SUPPORTED_EXTENSIONS
from image_compressor.core.models import CompressedResult, ResizePolicy
from image_compressor.core.orchestrator import CompressorState, RecompressionOrchestrator
from image_compressor.core.presets import CUSTOM_PRESET, PRESETS, lookup

logger = logging.getLogger(__name__)

PREVIEW_SIZE = (360, 240)
QUALITY_MIN = 50
QUALITY_MAX = 95


class MainWindow(ctk.CTk):
    def __init__(self) -> None:
        super().__init__()

        self.title("Image Compressor Pro")
        self.geometry("980x760")
        self.minsize(900, 680)

        self.numeric_validation = (self.register(self._validate_numeric_input), "%P")
        self.original_preview: ctk.CTkImage | None = None
        self.compressed_preview: ctk.CTkImage | None = None

        self.orchestrator = RecompressionOrchestrator(
            on_result=lambda result: self.after(0, self._show_result, result),
            on_error=lambda error: self.after(0, self._show_error, error),
            on_state_change=lambda state: self.after(0, self._show_state, state),
        )

        self._build_ui()

    def _build_ui(self) -> None:
        self.grid_columnconfigure(0, weight=1)
        self.grid_rowconfigure(2, weight=1)

        controls = ctk.CTkFrame(self)
        controls.grid(row=0, column=0, sticky="ew", padx=18, pady=(18, 10))
        controls.grid_columnconfigure((0, 1), weight=1)

        self.select_file_button = ctk.CTkButton(controls, text="Choose File", command=self._pick_file)
        self.select_file_button.grid(row=0, column=0, padx=10, pady=10, sticky="ew")

        self.reset_button = ctk.CTkButton(
            controls,
            text="Upload New Image",
            command=self._reset,
            fg_color="transparent",
            border_width=1,
            text_color=("gray10", "gray90"),
        )
        self.reset_button.grid(row=0, column=1, padx=10, pady=10, sticky="ew")

        options = ctk.CTkFrame(self)
        options.grid(row=1, column=0, sticky="ew", padx=18, pady=(0, 10))
        options.grid_columnconfigure((0, 1), weight=1)

        ctk.CTkLabel(options, text="Platform Preset").grid(row=0, column=0, sticky="w", padx=12, pady=(12, 4))
        self.preset_names = {preset.name: key for key, preset in PRESETS.items()}
        self.preset_selector = ctk.CTkSegmentedButton(
            options,
            values=list(self.preset_names),
            command=self._on_preset_change,
        )
        self.preset_selector.set(PRESETS[self.orchestrator.preset_name].name)
        self.preset_selector.grid(row=1, column=0, sticky="ew", padx=12, pady=(0, 6))

        self.preset_info_label = ctk.CTkLabel(options, text="", justify="left")
        self.preset_info_label.grid(row=2, column=0, sticky="w", padx=12, pady=(0, 12))

        self.quality_value = ctk.StringVar(value=f"Compression Quality: {self.orchestrator.quality}%")
        ctk.CTkLabel(options, textvariable=self.quality_value).grid(row=0, column=1, sticky="w", padx=12, pady=(12, 4))
        self.quality_slider = ctk.CTkSlider(
            options,
            from_=QUALITY_MIN,
            to=QUALITY_MAX,
            number_of_steps=QUALITY_MAX - QUALITY_MIN,
            command=self._on_quality_change,
        )
        self.quality_slider.set(self.orchestrator.quality)
        self.quality_slider.grid(row=1, column=1, sticky="ew", padx=12, pady=(0, 6))

        self.custom_frame = ctk.CTkFrame(options)
        self.custom_frame.grid_columnconfigure((0, 1), weight=1)

        default_width, default_height = self.orchestrator.custom_bounds
        ctk.CTkLabel(self.custom_frame, text="Max Width (px)").grid(row=0, column=0, sticky="w", padx=12)
        self.custom_width_entry = ctk.CTkEntry(
            self.custom_frame,
            placeholder_text=str(default_width),
            validate="key",
            validatecommand=self.numeric_validation,
        )
        self.custom_width_entry.insert(0, str(default_width))
        self.custom_width_entry.grid(row=1, column=0, sticky="ew", padx=12, pady=(4, 8))
        self.custom_width_entry.bind("<KeyRelease>", self._on_custom_dimension_change)

        ctk.CTkLabel(self.custom_frame, text="Max Height (px)").grid(row=0, column=1, sticky="w", padx=12)
        self.custom_height_entry = ctk.CTkEntry(
            self.custom_frame,
            placeholder_text=str(default_height),
            validate="key",
            validatecommand=self.numeric_validation,
        )
        self.custom_height_entry.insert(0, str(default_height))
        self.custom_height_entry.grid(row=1, column=1, sticky="ew", padx=12, pady=(4, 8))
        self.custom_height_entry.bind("<KeyRelease>", self._on_custom_dimension_change)

        ctk.CTkLabel(
            self.custom_frame,
            text=f"Enter values between 1 and {Config.MAX_DIMENSION}. Images keep their aspect ratio.",
        ).grid(row=2, column=0, columnspan=2, sticky="w", padx=12, pady=(0, 8))

        previews = ctk.CTkFrame(self)
        previews.grid(row=2, column=0, sticky="nsew", padx=18, pady=(0, 10))
        previews.grid_columnconfigure((0, 1), weight=1)
        previews.grid_rowconfigure(1, weight=1)

        ctk.CTkLabel(previews, text="Original").grid(row=0, column=0, sticky="w", padx=12, pady=(10, 6))
        ctk.CTkLabel(previews, text="Compressed").grid(row=0, column=1, sticky="w", padx=12, pady=(10, 6))

        self.original_image_label = ctk.CTkLabel(previews, text="Drop in a JPG or PNG to start")
        self.original_image_label.grid(row=1, column=0, sticky="nsew", padx=12)
        self.compressed_image_label = ctk.CTkLabel(previews, text="")
        self.compressed_image_label.grid(row=1, column=1, sticky="nsew", padx=12)

        self.original_stats_label = ctk.CTkLabel(previews, text="", justify="left")
        self.original_stats_label.grid(row=2, column=0, sticky="w", padx=12, pady=(6, 12))
        self.compressed_stats_label = ctk.CTkLabel(previews, text="", justify="left")
        self.compressed_stats_label.grid(row=2, column=1, sticky="w", padx=12, pady=(6, 12))

        footer = ctk.CTkFrame(self)
        footer.grid(row=3, column=0, sticky="ew", padx=18, pady=(0, 18))
        footer.grid_columnconfigure(0, weight=1)

        self.error_label = ctk.CTkLabel(footer, text="", text_color="#f7768e", justify="left")
        self.error_label.grid(row=0, column=0, sticky="w", padx=12, pady=8)

        self.save_button = ctk.CTkButton(footer, text="Save Compressed", command=self._save_result, state="disabled")
        self.save_button.grid(row=0, column=1, sticky="e", padx=12, pady=8)

        self._refresh_preset_section()

    def _pick_file(self) -> None:
        patterns = " ".join(f"*{extension}" for extension in sorted(SUPPORTED_EXTENSIONS))
        selected = filedialog.askopenfilename(
            title="Select image",
            filetypes=[("Images", patterns), ("All files", "*.*")],
        )
        if not selected:
            return

        self.error_label.configure(text="")
        self.original_preview = None
        self._clear_compressed_preview()
        self.orchestrator.open_file(Path(selected))

    def _reset(self) -> None:
        self.orchestrator.reset()
        self.error_label.configure(text="")
        self.original_preview = None
        self.original_image_label.configure(image=None, text="Drop in a JPG or PNG to start")
        self.original_stats_label.configure(text="")
        self._clear_compressed_preview()

    def _on_preset_change(self, display_name: str) -> None:
        self.error_label.configure(text="")
        self.orchestrator.change_preset(self.preset_names[display_name])
        self._refresh_preset_section()

    def _on_quality_change(self, value: float) -> None:
        quality = int(value)
        self.quality_value.set(f"Compression Quality: {quality}%")
        self.orchestrator.change_quality(quality)

    def _on_custom_dimension_change(self, _event: object) -> None:
        accepted = self.orchestrator.change_custom_bounds(
            self.custom_width_entry.get(),
            self.custom_height_entry.get(),
        )
        if accepted:
            self.error_label.configure(text="")

    def _refresh_preset_section(self) -> None:
        preset = lookup(self.orchestrator.preset_name)

        if preset.key == CUSTOM_PRESET:
            self.custom_frame.grid(row=2, column=0, columnspan=2, sticky="ew", padx=12, pady=(0, 12))
            self.preset_info_label.configure(text=preset.description)
            return

        self.custom_frame.grid_forget()
        lines = [
            preset.description,
            f"• Target file size: {format_file_size(preset.target_byte_budget or 0)}",
            f"• Dimensions: {preset.max_width}×{preset.max_height}",
        ]
        if preset.resize_policy is ResizePolicy.EXACT_RESIZE:
            lines.append("• Images are resized to exact dimensions")
        else:
            lines.append("• Images are scaled down while keeping aspect ratio")
        self.preset_info_label.configure(text="\n".join(lines))

    def _show_state(self, state: CompressorState) -> None:
        busy = state is CompressorState.COMPRESSING
        if busy:
            self.compressed_image_label.configure(text="Compressing...")
        self.save_button.configure(
            state="normal" if not busy and self.orchestrator.current_result is not None else "disabled"
        )
        if state is CompressorState.IDLE and self.orchestrator.source is None:
            self.original_preview = None
            self.original_image_label.configure(image=None, text="Drop in a JPG or PNG to start")
            self.original_stats_label.configure(text="")
            self.compressed_image_label.configure(text="")
            return
        self._show_source()

    def _show_source(self) -> None:
        source = self.orchestrator.source
        if source is None or self.original_preview is not None:
            return

        preview = source.image.copy()
        preview.thumbnail(PREVIEW_SIZE, Image.Resampling.LANCZOS)
        self.original_preview = ctk.CTkImage(light_image=preview, dark_image=preview, size=preview.size)
        self.original_image_label.configure(image=self.original_preview, text="")
        self.original_stats_label.configure(
            text=f"Size: {format_file_size(source.byte_size)}\nDimensions: {source.width} × {source.height}px"
        )

    def _show_result(self, result: CompressedResult) -> None:
        source = self.orchestrator.source
        with Image.open(io.BytesIO(result.encoded_bytes)) as decoded:
            preview = decoded.copy()
        preview.thumbnail(PREVIEW_SIZE, Image.Resampling.LANCZOS)

        self.compressed_preview = ctk.CTkImage(light_image=preview, dark_image=preview, size=preview.size)
        self.compressed_image_label.configure(image=self.compressed_preview, text="")

        lines = [
            f"Size: {format_file_size(result.byte_size)}",
            f"Dimensions: {result.width} × {result.height}px",
            f"Quality used: {result.quality_used}%",
        ]
        if source is not None:
            lines.append(f"Reduced by {result.reduction_percent(source.byte_size)}%")
        if not result.within_budget:
            lines.append("Could not reach the target size at the lowest quality")
        self.compressed_stats_label.configure(text="\n".join(lines))

    def _show_error(self, error: CompressionError) -> None:
        logger.warning(f"Showing error: {error.message}")
        self.error_label.configure(text=error.message)

    def _clear_compressed_preview(self) -> None:
        self.compressed_preview = None
        self.compressed_image_label.configure(image=None, text="")
        self.compressed_stats_label.configure(text="")

    def _save_result(self) -> None:
        result = self.orchestrator.current_result
        source = self.orchestrator.source
        if result is None:
            messagebox.showinfo("Nothing to save", "Compress an image first.")
            return

        selected = filedialog.asksaveasfilename(
            title="Save compressed image",
            defaultextension=".jpg",
            initialfile=build_download_name(source.name if source else None),
            filetypes=[("JPEG", "*.jpg *.jpeg")],
        )
        if not selected:
            return

        try:
            saved = save_result(result, Path(selected))
        except OSError as error:
            messagebox.showerror("Save failed", str(error))
            return
        logger.info(f"Saved compressed image to {saved}", extra={"byte_size": result.byte_size})

    def _validate_numeric_input(self, value: str) -> bool:
        return value.isdigit() or value == ""
