# wassce_parser/services/preprocess.py
"""
Image clean-up before Tesseract sees a results slip.
- Resizing (target_width)
- Deskew (phone photos are rarely square to the page)
- Bilateral denoise + CLAHE contrast
- Adaptive thresholding, Otsu when that fails
"""
from typing import Optional
from PIL import Image, ImageOps
import cv2
import numpy as np
import logging

logger = logging.getLogger("services.preprocess")


def _deskew(gray: np.ndarray) -> np.ndarray:
    """
    Estimate skew angle from the dark pixels and rotate to level the text.
    Works on grayscale images (uint8).
    """
    coords = cv2.findNonZero(cv2.bitwise_not(gray))
    if coords is None:
        return gray
    angle = cv2.minAreaRect(coords)[-1]
    if angle < -45:
        angle = -(90 + angle)
    else:
        angle = -angle
    # minAreaRect reports 90 for an already-level page on newer OpenCV
    if abs(angle) > 45:
        angle = angle - 90 if angle > 0 else angle + 90
    (h, w) = gray.shape[:2]
    M = cv2.getRotationMatrix2D((w // 2, h // 2), angle, 1.0)
    logger.debug("deskew angle: %.3f", angle)
    return cv2.warpAffine(gray, M, (w, h), flags=cv2.INTER_CUBIC, borderMode=cv2.BORDER_REPLICATE)


def preprocess_image(
    img: Image.Image,
    target_width: Optional[int] = 1600,
    deskew: bool = True,
) -> Image.Image:
    """
    Full preprocessing pipeline for OCR.
    Returns a binarized PIL.Image suitable for Tesseract.
    """
    img = img.convert("RGB")
    orig_w, orig_h = img.size

    if target_width and orig_w != target_width:
        ratio = target_width / float(orig_w)
        img = img.resize((target_width, int(round(orig_h * ratio))), resample=Image.LANCZOS)

    gray = np.array(ImageOps.grayscale(img))

    if deskew:
        try:
            gray = _deskew(gray)
        except cv2.error:
            logger.exception("Deskew failed; continuing without deskew")

    gray = cv2.bilateralFilter(gray, d=9, sigmaColor=75, sigmaSpace=75)
    gray = cv2.createCLAHE(clipLimit=2.0, tileGridSize=(8, 8)).apply(gray)

    try:
        thresh = cv2.adaptiveThreshold(
            gray, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C,
            cv2.THRESH_BINARY, blockSize=15, C=10
        )
    except cv2.error:
        logger.exception("adaptiveThreshold failed; falling back to Otsu")
        _, thresh = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)

    return Image.fromarray(thresh)
