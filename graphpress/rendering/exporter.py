"""
Adapter for the external Logseq renderer (export-logseq-notes).

The renderer is an opaque binary. We write a configuration that includes
every page, run it against the checkout, and hand back the directory holding
one HTML document per page.
"""

import asyncio
import logging
import os
import shutil
from pathlib import Path
from typing import List, Optional

from ..config import config
from ..errors import RenderError


EXPORT_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>{{title}}</title>
  <meta name="created" content="{{format_time "%Y-%m-%d" created_time}}">
  <meta name="updated" content="{{format_time "%Y-%m-%d" edited_time}}">
  {{#if tags}}
  <meta name="tags" content="{{join tags ", "}}">
  {{/if}}
</head>
<body>
{{{body}}}
</body>
</html>"""

# Every page is included; filtering happens at display time
EXPORT_SCRIPT = """page.include = true;
page.allow_embedding = AllowEmbed::Yes;
page.url_base = "";

if page.is_journal {
  page.top_header_level = 3;
}

each_block(9999, |block, depth| {
  let wrap_el = block.get_attr_first("wrap-el");
  if !wrap_el.is_empty() {
    block.wrapper_element = wrap_el;
  }
  let classes = block.get_attr("wrap-class");
  if !classes.is_empty() {
    block.classlist = classes;
  }
});"""

EXPORT_CONFIG = """data = "{data}"
product = "logseq"
output = "{output}"
script = "{script}"
template = "{template}"
extension = "html"
highlight_class_prefix = "sy-"
tags_attr = "tags"
use_all_hashtags = true
omit_attributes = ["tags", "Tags", "public", "Public", "draft", "Draft"]
filter_link_only_blocks = true
base_url = "/notes"
convert_emdash = true
promote_headers = true
top_header_level = 2
include_all_page_embeds = true
"""

CONFIG_FILE = ".graphpress-export-config.toml"
SCRIPT_FILE = ".graphpress-script.rhai"
TEMPLATE_FILE = ".graphpress-template.tmpl"


def _toml_string(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def find_binary(name: str, search_paths: Optional[List[str]] = None) -> Optional[str]:
    """
    Locate an executable by name or path.

    Looks at an explicit path first, then PATH, then the given directories.
    """
    if os.path.sep in name:
        return name if os.access(name, os.X_OK) else None

    found = shutil.which(name)
    if found:
        return found

    for directory in search_paths or []:
        candidate = Path(directory).expanduser() / name
        if candidate.is_file() and os.access(candidate, os.X_OK):
            return str(candidate)

    return None


class LogseqExporter:
    """
    Runs export-logseq-notes over a repository checkout.
    """

    def __init__(self, binary: Optional[str] = None, timeout: Optional[float] = None,
                 max_output_bytes: Optional[int] = None, output_dir_name: Optional[str] = None):
        """
        Initialize the exporter.

        Args:
            binary: Binary name or path (defaults to config value)
            timeout: Wall-clock limit for one export in seconds
            max_output_bytes: Cap on captured stdout/stderr kept for diagnostics
            output_dir_name: Name of the output directory created inside the checkout
        """
        self.binary = binary or config.renderer_binary
        self.timeout = timeout or config.renderer_timeout
        self.max_output_bytes = max_output_bytes or config.renderer_max_output_bytes
        self.output_dir_name = output_dir_name or config.get("renderer.output_dir", ".graphpress-output")

    def _write_config(self, repo_path: Path, output_dir: Path) -> List[Path]:
        script_path = repo_path / SCRIPT_FILE
        template_path = repo_path / TEMPLATE_FILE
        config_path = repo_path / CONFIG_FILE

        script_path.write_text(EXPORT_SCRIPT, encoding="utf-8")
        template_path.write_text(EXPORT_TEMPLATE, encoding="utf-8")
        config_path.write_text(EXPORT_CONFIG.format(
            data=_toml_string(str(repo_path)),
            output=_toml_string(str(output_dir)),
            script=_toml_string(str(script_path)),
            template=_toml_string(str(template_path)),
        ), encoding="utf-8")

        return [config_path, script_path, template_path]

    async def export(self, repo_path: str) -> Path:
        """
        Render every page of the graph at ``repo_path`` to HTML.

        Returns:
            The directory containing the rendered documents

        Raises:
            RenderError: If the binary is missing, fails, reports an error or writes nothing
        """
        binary_path = find_binary(self.binary, config.renderer_search_paths)
        if not binary_path:
            raise RenderError(f"{self.binary} not found. Install it or set renderer.binary in config.yaml")

        root = Path(repo_path)
        output_dir = root / self.output_dir_name
        output_dir.mkdir(parents=True, exist_ok=True)
        # The renderer refuses to run without a journals directory
        (root / "journals").mkdir(exist_ok=True)

        generated = self._write_config(root, output_dir)
        logging.info(f"Running {binary_path} on {root}")

        try:
            process = await asyncio.create_subprocess_exec(
                binary_path, "--config", str(root / CONFIG_FILE),
                cwd=str(root),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            try:
                stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
            except asyncio.TimeoutError:
                process.kill()
                await process.wait()
                raise RenderError(f"Renderer timed out after {self.timeout:.0f}s")
        except OSError as e:
            raise RenderError(f"Failed to start renderer: {e}")
        finally:
            for path in generated:
                path.unlink(missing_ok=True)

        out_text = stdout[:self.max_output_bytes].decode("utf-8", errors="replace")
        err_text = stderr[:self.max_output_bytes].decode("utf-8", errors="replace")

        if process.returncode != 0:
            raise RenderError(
                f"Renderer exited with status {process.returncode}",
                diagnostics=err_text or out_text,
            )

        if "error" in err_text.lower():
            raise RenderError("Renderer reported an error", diagnostics=err_text)

        if not any(output_dir.iterdir()):
            raise RenderError("No pages exported. Check if the graph has a pages directory.")

        logging.info(f"Renderer finished, output in {output_dir}")
        return output_dir
