"""
DryPrompt

Watches what you type into an AI coding assistant, finds the prompts you
keep repeating, and suggests text-replacement shortcuts for them.

Philosophy:
- Capture is passive and local; nothing leaves the machine until analysis
- A failed analysis still archives what it read
- Suggestions are proposals; applying them is the user's call

Usage:
    from dryprompt.common import load_config
    from dryprompt.capture import LogStore, CaptureCoordinator
    from dryprompt.analysis import AnalysisPipeline, derive_trigger
    from dryprompt.app import ApplicationController
"""

__version__ = "0.1.0"
