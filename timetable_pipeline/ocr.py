"""Local Tesseract OCR, the terminal fallback of the provider chain.

Pages are classified by line density; table pages (most timetables) get their
grid lines inpainted away before recognition. Several preprocessing/PSM
combinations are tried and the reading that agrees most with the others wins.
Text is rebuilt line by line from Tesseract's block/paragraph/line ids so row
structure survives for the structuring model.
"""

from __future__ import annotations

import logging

import cv2
import numpy as np
import pytesseract
from PIL import Image, ImageFilter, ImageOps

from .config import OCR_LANG
from .utils import ensure_binaries, similarity_ratio

logger = logging.getLogger(__name__)

PROVIDER_NAME = "tesseract"

OCR_OEM = 1
OCR_THRESHOLD = 128
OCR_USE_OTSU = True
OCR_USE_OSD = True
# Small scans are upscaled before recognition.
OCR_MIN_WIDTH = 1500
OCR_TARGET_WIDTH = 2000
OCR_PREPROCESS_STRATEGIES = (
    {
        "name": "standard",
        "threshold": OCR_THRESHOLD,
        "use_osd": OCR_USE_OSD,
        "median_size": 3,
        "unsharp": (1, 150, 3),
        "autocontrast_cutoff": 1,
    },
    {
        "name": "aggressive",
        "threshold": 160,
        "use_osd": OCR_USE_OSD,
        "median_size": 5,
        "unsharp": (2, 200, 3),
        "autocontrast_cutoff": 2,
    },
)
_STRATEGIES_BY_NAME = {s["name"]: s for s in OCR_PREPROCESS_STRATEGIES}

LAYOUT_PRESETS = {
    "text": {
        "psm": (6, 3),
        "preprocess": ("standard",),
    },
    "table": {
        "psm": (4, 6, 11),
        "preprocess": ("standard", "aggressive"),
    },
    "noisy": {
        "psm": (4, 6, 11),
        "preprocess": ("aggressive", "standard"),
    },
}


def _build_config(psm: int, lang: str = OCR_LANG, tessdata_path: str | None = None) -> str:
    parts = [f"--oem {OCR_OEM}", f"--psm {psm}", f"-l {lang}"]
    if tessdata_path:
        parts.append(f"--tessdata-dir \"{tessdata_path}\"")
    return " ".join(parts)


# ---------------------------------------------------------------------------
# Preprocessing
# ---------------------------------------------------------------------------
def _otsu_threshold(gray: Image.Image) -> int:
    """Compute an Otsu threshold for a grayscale image."""

    histogram = gray.histogram()
    total = sum(histogram)
    if total == 0:
        return OCR_THRESHOLD
    sum_total = sum(index * count for index, count in enumerate(histogram))

    sum_background = 0
    weight_background = 0
    max_variance = 0.0
    threshold = OCR_THRESHOLD

    for index, count in enumerate(histogram):
        weight_background += count
        if weight_background == 0:
            continue
        weight_foreground = total - weight_background
        if weight_foreground == 0:
            break
        sum_background += index * count
        mean_background = sum_background / weight_background
        mean_foreground = (sum_total - sum_background) / weight_foreground
        variance_between = (
            weight_background
            * weight_foreground
            * (mean_background - mean_foreground) ** 2
        )
        if variance_between > max_variance:
            max_variance = variance_between
            threshold = index

    return threshold


def _apply_osd_rotation(
    image: Image.Image, use_osd: bool, tessdata_path: str | None
) -> Image.Image:
    """Rotate using Tesseract OSD orientation when available."""

    if not use_osd:
        return image
    try:
        config = "--psm 0"
        if tessdata_path:
            config = f'{config} --tessdata-dir "{tessdata_path}"'
        osd = pytesseract.image_to_osd(
            image, output_type=pytesseract.Output.STRING, config=config
        )
        for line in osd.splitlines():
            if line.strip().startswith("Rotate:"):
                rotate = int(line.split(":")[1].strip())
                if rotate:
                    return image.rotate(-rotate, expand=True)
    except (pytesseract.TesseractError, ValueError):
        # OSD needs enough text to decide; small or blank images fail here.
        return image
    return image


def _select_threshold(gray: Image.Image, threshold: int) -> int:
    if OCR_USE_OTSU:
        otsu = _otsu_threshold(gray)
        return int((otsu + threshold) / 2)
    return threshold


def upscale_small_image(image: Image.Image) -> Image.Image:
    """Resize narrow scans to OCR_TARGET_WIDTH, keeping the aspect ratio."""

    width, height = image.size
    if width >= OCR_MIN_WIDTH or width == 0:
        return image
    scale = OCR_TARGET_WIDTH / width
    return image.resize((OCR_TARGET_WIDTH, max(1, int(height * scale))), Image.LANCZOS)


def preprocess_image(
    image: Image.Image,
    threshold: int = OCR_THRESHOLD,
    use_osd: bool = OCR_USE_OSD,
    median_size: int = 3,
    unsharp: tuple[int, int, int] = (1, 150, 3),
    autocontrast_cutoff: int = 1,
    tessdata_path: str | None = None,
) -> Image.Image:
    """Grayscale, normalize, sharpen and binarize an image for Tesseract."""

    gray = image.convert("L")
    gray = ImageOps.autocontrast(gray, cutoff=autocontrast_cutoff)
    gray = gray.filter(ImageFilter.MedianFilter(size=median_size))
    gray = gray.filter(
        ImageFilter.UnsharpMask(
            radius=unsharp[0], percent=unsharp[1], threshold=unsharp[2]
        )
    )
    gray = _apply_osd_rotation(gray, use_osd, tessdata_path)
    threshold = _select_threshold(gray, threshold)
    return gray.point(lambda x: 255 if x > threshold else 0, mode="1")


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------
def _to_cv_gray(image: Image.Image) -> np.ndarray:
    return cv2.cvtColor(np.array(image.convert("RGB")), cv2.COLOR_RGB2GRAY)


def detect_table_lines(gray: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Detect horizontal and vertical grid lines."""

    _, binary = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY_INV + cv2.THRESH_OTSU)
    h_kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (40, 1))
    v_kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (1, 40))

    horizontal = cv2.erode(binary, h_kernel, iterations=1)
    horizontal = cv2.dilate(horizontal, h_kernel, iterations=2)

    vertical = cv2.erode(binary, v_kernel, iterations=1)
    vertical = cv2.dilate(vertical, v_kernel, iterations=2)

    return horizontal, vertical


def remove_table_lines(gray: np.ndarray, horizontal: np.ndarray, vertical: np.ndarray) -> np.ndarray:
    """Inpaint detected grid lines out of a grayscale image."""

    grid = cv2.bitwise_or(horizontal, vertical)
    return cv2.inpaint(gray, grid, 3, cv2.INPAINT_TELEA)


def classify_layout(image: Image.Image) -> str:
    """Classify an image as text/table/noisy using line, edge and ink density."""

    gray = _to_cv_gray(image)
    horizontal, vertical = detect_table_lines(gray)
    line_density = (cv2.countNonZero(horizontal) + cv2.countNonZero(vertical)) / (
        gray.shape[0] * gray.shape[1]
    )
    if line_density > 0.01:
        return "table"

    small = cv2.resize(gray, (400, 400))
    edges = cv2.Canny(small, 100, 200)
    edge_density = cv2.countNonZero(edges) / edges.size
    ink_density = int(np.count_nonzero(small < 200)) / small.size
    if ink_density > 0.10 and edge_density < 0.08:
        return "text"
    return "noisy"


def _strip_grid(image: Image.Image) -> Image.Image:
    gray = _to_cv_gray(image)
    horizontal, vertical = detect_table_lines(gray)
    return Image.fromarray(remove_table_lines(gray, horizontal, vertical))


# ---------------------------------------------------------------------------
# Recognition
# ---------------------------------------------------------------------------
def _extract_lines(ocr_data: dict) -> tuple[list[str], list[float]]:
    """Group recognized words into lines; return (lines, word confidences)."""

    lines: dict[tuple[int, int, int], list[str]] = {}
    confidences: list[float] = []
    text_items = ocr_data.get("text", [])
    for index in range(len(text_items)):
        text = (text_items[index] or "").strip()
        if not text:
            continue
        try:
            confidence = float(ocr_data["conf"][index])
        except (KeyError, IndexError, TypeError, ValueError):
            confidence = -1.0
        if confidence < 0:
            continue
        key = (
            int(ocr_data.get("block_num", [0] * len(text_items))[index]),
            int(ocr_data.get("par_num", [0] * len(text_items))[index]),
            int(ocr_data.get("line_num", [0] * len(text_items))[index]),
        )
        lines.setdefault(key, []).append(text)
        confidences.append(confidence)
    return [" ".join(words) for _, words in sorted(lines.items())], confidences


def _mean_confidence(confidences: list[float]) -> float:
    if not confidences:
        return 0.0
    return sum(confidences) / len(confidences)


def _ocr_candidates(
    image: Image.Image,
    psm_candidates: tuple[int, ...],
    preprocess_strategies: tuple[dict, ...],
    lang: str,
    tessdata_path: str | None,
) -> list[dict]:
    candidates: list[dict] = []
    for preprocess in preprocess_strategies:
        processed_image = preprocess_image(
            image,
            threshold=preprocess["threshold"],
            use_osd=preprocess["use_osd"],
            median_size=preprocess["median_size"],
            unsharp=preprocess["unsharp"],
            autocontrast_cutoff=preprocess["autocontrast_cutoff"],
            tessdata_path=tessdata_path,
        )
        for psm in psm_candidates:
            ocr_data = pytesseract.image_to_data(
                processed_image,
                output_type=pytesseract.Output.DICT,
                config=_build_config(psm, lang=lang, tessdata_path=tessdata_path),
            )
            lines, confidences = _extract_lines(ocr_data)
            candidates.append(
                {
                    "text": "\n".join(lines).strip(),
                    "confidence": _mean_confidence(confidences),
                    "strategy": {"name": preprocess["name"], "psm": psm},
                }
            )
    return candidates


def _pick_consensus(candidates: list[dict]) -> dict:
    # Blank readings only win when every pass came back blank.
    readable = [c for c in candidates if c["text"].strip()]
    if not readable:
        best = max(candidates, key=lambda item: item["confidence"])
        best["consensus_similarity"] = 0.0
        return best
    candidates = readable
    for candidate in candidates:
        similarities: list[float] = []
        for other in candidates:
            if other is candidate:
                continue
            ratio = similarity_ratio(candidate["text"], other["text"])
            if ratio is not None:
                similarities.append(ratio)
        candidate["consensus_similarity"] = (
            sum(similarities) / len(similarities) if similarities else 1.0
        )
    return max(
        candidates,
        key=lambda item: (item["consensus_similarity"], item["confidence"]),
    )


def ocr_image(
    image: Image.Image,
    lang: str = OCR_LANG,
    tessdata_path: str | None = None,
) -> dict:
    """Run Tesseract on one image.

    Returns ``{"text", "confidence", "layout", "strategy"}``; ``confidence``
    is Tesseract's mean word confidence (0-100) for the chosen reading.
    """
    ensure_binaries(["tesseract"])
    prepared = upscale_small_image(image.convert("RGB"))
    layout = classify_layout(prepared)
    preset = LAYOUT_PRESETS[layout]
    if layout == "table":
        prepared = _strip_grid(prepared)

    candidates = _ocr_candidates(
        prepared,
        preset["psm"],
        tuple(_STRATEGIES_BY_NAME[name] for name in preset["preprocess"]),
        lang,
        tessdata_path,
    )
    best = _pick_consensus(candidates)
    logger.debug(
        "Tesseract picked %s/psm %s on %s layout (conf %.1f, consensus %.2f)",
        best["strategy"]["name"],
        best["strategy"]["psm"],
        layout,
        best["confidence"],
        best["consensus_similarity"],
    )
    return {
        "text": best["text"],
        "confidence": round(best["confidence"], 1),
        "layout": layout,
        "strategy": {**best["strategy"], "consensus_candidates": len(candidates)},
    }
