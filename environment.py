"""
Lexical environment
A frame maps names to values and points at its parent; the chain from the
current frame up to the root is the active scope stack, the root is the
global frame. Frames are mutated in place and shared with every closure
created while they were active.
"""

from typing import Dict, List, Optional

from values import NIL


# ============================================================================
# DATA STRUCTURES
# ============================================================================

def make_frame(parent: Optional[Dict] = None, bindings: Optional[Dict] = None) -> Dict:
  """Create a frame whose lexical parent is `parent` (None for the global frame)"""
  return {
      'parent': parent,
      'bindings': dict(bindings or {})
  }


def env_push(env: Dict, bindings: Optional[Dict] = None) -> Dict:
  """Enter a block: a new innermost frame on top of `env`"""
  return make_frame(env, bindings)


# ============================================================================
# ENVIRONMENT OPERATIONS
# ============================================================================

def env_resolve(env: Dict, name: str) -> Optional[Dict]:
  """Innermost frame that defines `name`, or None"""
  frame = env
  while frame is not None:
    if name in frame['bindings']:
      return frame
    frame = frame['parent']
  return None


def env_global(env: Dict) -> Dict:
  """The root frame of a chain"""
  frame = env
  while frame['parent'] is not None:
    frame = frame['parent']
  return frame


def env_lookup(env: Dict, name: str) -> Dict:
  """Read a name; unbound names read as nil"""
  frame = env_resolve(env, name)
  if frame is None:
    return NIL
  return frame['bindings'][name]


def env_assign(env: Dict, name: str, value: Dict) -> None:
  """Plain assignment: update the defining frame, or create a global"""
  frame = env_resolve(env, name)
  if frame is None:
    frame = env_global(env)
  frame['bindings'][name] = value


def env_declare(env: Dict, names: List[str], values: List[Dict]) -> Dict:
  """
  Declare locals and return the frame to continue the block with.

  Every declaration opens a child frame of `env`. Closures created earlier in
  the block hold `env` itself, so a later local never becomes visible to them.
  """
  return env_push(env, dict(zip(names, values)))


def env_is_global(env: Dict, name: str) -> bool:
  """True when `name` resolves to the global frame (or is unbound)"""
  frame = env_resolve(env, name)
  return frame is None or frame['parent'] is None

