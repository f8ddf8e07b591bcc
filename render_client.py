import copy
import json
import logging
import time
import uuid
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

import requests

from asset_processor import CONTENT_TYPE_EXTENSIONS
from errors import RenderFailed

logger = logging.getLogger("RenderClient")

WORKFLOW_DIR = Path(__file__).parent / "workflows"
RENDER_WORKFLOW_ID = "render_view"
RENDER_PROMPT = (
    "Top-down architectural floor plan rendered as a photorealistic 3D view, "
    "clean materials, soft daylight, furniture in place, no text or labels"
)

# parameter -> (node id, input name) in render_view.json
DEFAULT_MAPPING = {
    "model": ("1", "ckpt_name"),
    "image": ("2", "image"),
    "prompt": ("4", "text"),
    "seed": ("6", "seed"),
}
IMAGE_OUTPUT_KEYS = ("images", "image")


class RenderClient:
    """Image-to-image render provider backed by a ComfyUI server"""

    def __init__(
        self,
        base_url: str,
        model: Optional[str] = None,
        timeout: int = 30,
        workflow_dir: Path = WORKFLOW_DIR,
        max_attempts: int = 120,
        poll_interval: float = 1.0
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.workflow_dir = Path(workflow_dir)
        self.max_attempts = max_attempts
        self.poll_interval = poll_interval

    def render(self, image_bytes: bytes, mime_type: str = "image/png", prompt: str = RENDER_PROMPT) -> str:
        """Render a new image from image_bytes.

        Returns:
            URL of the rendered image on the ComfyUI server

        Raises:
            RenderFailed: If any step of the upload/queue/poll cycle fails
        """
        try:
            uploaded_name = self._upload_image(image_bytes, mime_type)
            workflow = self._build_workflow(uploaded_name, prompt)
            prompt_id = self._queue_workflow(workflow)
            outputs = self._wait_for_prompt(prompt_id)
            asset_url = self._extract_first_asset_url(outputs, IMAGE_OUTPUT_KEYS)
        except RenderFailed:
            raise
        except requests.RequestException as e:
            raise RenderFailed(f"ComfyUI API error: {e}")
        except (KeyError, ValueError) as e:
            raise RenderFailed(f"Workflow error - invalid node or input: {e}")
        logger.info(f"Rendered image URL: {asset_url}")
        return asset_url

    def _upload_image(self, image_bytes: bytes, mime_type: str) -> str:
        ext = CONTENT_TYPE_EXTENSIONS.get(mime_type, "png")
        filename = f"render_input_{uuid.uuid4().hex[:12]}.{ext}"
        response = requests.post(
            f"{self.base_url}/upload/image",
            files={"image": (filename, image_bytes, mime_type)},
            data={"overwrite": "true"},
            timeout=self.timeout,
        )
        if response.status_code != 200:
            raise RenderFailed(f"Failed to upload image: {response.status_code} - {response.text}")
        data = response.json()
        name = data["name"]
        subfolder = data.get("subfolder")
        return f"{subfolder}/{name}" if subfolder else name

    def _build_workflow(self, image_name: str, prompt: str) -> Dict[str, Any]:
        workflow_file = self.workflow_dir / f"{RENDER_WORKFLOW_ID}.json"
        try:
            with open(workflow_file, "r", encoding="utf-8") as f:
                workflow = copy.deepcopy(json.load(f))
        except FileNotFoundError:
            raise RenderFailed(f"Workflow file '{workflow_file}' not found")

        params = {"image": image_name, "prompt": prompt, "seed": int(time.time() * 1000) % (2 ** 32)}
        if self.model:
            params["model"] = self.model

        for param_key, value in params.items():
            node_id, input_key = DEFAULT_MAPPING[param_key]
            if node_id not in workflow:
                raise RenderFailed(f"Node {node_id} not found in workflow {RENDER_WORKFLOW_ID}")
            workflow[node_id]["inputs"][input_key] = value
        return workflow

    def _queue_workflow(self, workflow: Dict[str, Any]) -> str:
        logger.info("Submitting render workflow to ComfyUI...")
        response = requests.post(f"{self.base_url}/prompt", json={"prompt": workflow}, timeout=self.timeout)
        if response.status_code != 200:
            raise RenderFailed(f"Failed to queue workflow: {response.status_code} - {response.text}")
        prompt_id = response.json()["prompt_id"]
        logger.info(f"Queued workflow with prompt_id: {prompt_id}")
        return prompt_id

    def _wait_for_prompt(self, prompt_id: str) -> Dict[str, Any]:
        for attempt in range(self.max_attempts):
            response = requests.get(f"{self.base_url}/history/{prompt_id}", timeout=self.timeout)
            if response.status_code != 200:
                logger.warning("History endpoint returned %s on attempt %s", response.status_code, attempt + 1)
            else:
                history = response.json()
                if history.get(prompt_id):
                    return history[prompt_id]["outputs"]
            time.sleep(self.poll_interval)
        raise RenderFailed(f"Workflow {prompt_id} didn't complete within {self.max_attempts} attempts")

    def _extract_first_asset_url(self, outputs: Dict[str, Any], preferred_output_keys: Sequence[str]) -> str:
        for node_output in outputs.values():
            for key in preferred_output_keys:
                assets = node_output.get(key)
                if assets:
                    asset = assets[0]
                    filename = asset["filename"]
                    subfolder = asset.get("subfolder", "")
                    output_type = asset.get("type", "output")
                    return f"{self.base_url}/view?filename={filename}&subfolder={subfolder}&type={output_type}"
        raise RenderFailed(f"No outputs matched preferred keys: {preferred_output_keys}")
