# HEARTH v1.0 - Idempotent INI edits for PreStart hooks
import configparser
import io
from pathlib import Path

from utils.errors import StorageError
from utils.fileutil import atomic_write


class IniFile:
    '''Case-preserving INI file that is only rewritten when it changes'''

    def __init__(self, path):
        self.path = Path(path)
        self.parser = configparser.ConfigParser(interpolation=None, delimiters=('=',), strict=False)
        self.parser.optionxform = str
        self.dirty = False

    def load(self):
        if self.path.exists():
            try:
                self.parser.read(self.path, encoding='utf-8')
            except (OSError, configparser.Error) as e:
                raise StorageError("read ini file", self.path, e) from e
        return self

    def get(self, section, key, default=None):
        return self.parser.get(section, key, fallback=default)

    def ensure_keys(self, section, values):
        '''Set each key to its value; return True if anything changed'''
        changed = False
        if not self.parser.has_section(section):
            self.parser.add_section(section)
            changed = True
        for key, value in values.items():
            value = str(value)
            if self.parser.get(section, key, fallback=None) != value:
                self.parser.set(section, key, value)
                changed = True
        self.dirty = self.dirty or changed
        return changed

    def render(self):
        buf = io.StringIO()
        self.parser.write(buf, space_around_delimiters=False)
        return buf.getvalue()

    def save(self):
        '''Write the file if ensure_keys changed something'''
        if not self.dirty:
            return False
        atomic_write(self.path, self.render(), mode=0o644)
        self.dirty = False
        return True
