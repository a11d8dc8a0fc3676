# CHIP-8 INFO
# https://chip-8.github.io/extensions/#chip-8
# https://chip-8.github.io/links/
#
# COMPATIBILITY QUIRKS TABLE
# https://games.gulrak.net/cadmium/chip8-opcode-table.html#quirk6
#
# MASTERING CHIP-8
# https://github.com/mattmikolay/chip-8/wiki/Mastering-CHIP%E2%80%908
#
# TEST SUITE
# https://github.com/Timendus/chip8-test-suite


import argparse
import random
import sys
import time
from collections import namedtuple
from functools import wraps

import os
os.environ["PYGAME_HIDE_SUPPORT_PROMPT"] = "no welcome message"   # this env var disable pygame's welcome message when imported
import pygame
from pygame.locals import (
    K_1, K_2, K_3, K_4,
    K_q, K_w, K_e, K_r,
    K_a, K_s, K_d, K_f,
    K_z, K_x, K_c, K_v,
)


# ******************** STATIC SECTION
C8_FONTS = [0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
            0x20, 0x60, 0x20, 0x20, 0x70,  # 1
            0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
            0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
            0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
            0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
            0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
            0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
            0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
            0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
            0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
            0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
            0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
            0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
            0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
            0xF0, 0x80, 0xF0, 0x80, 0x80]  # F

# the COSMAC VIP hex keypad laid over the left side of a QWERTY keyboard
#   1 2 3 C        1 2 3 4
#   4 5 6 D   <=   Q W E R
#   7 8 9 E        A S D F
#   A 0 B F        Z X C V
KEY_MAPPINGS = {
    K_1: 0x1, K_2: 0x2, K_3: 0x3, K_4: 0xC,
    K_q: 0x4, K_w: 0x5, K_e: 0x6, K_r: 0xD,
    K_a: 0x7, K_s: 0x8, K_d: 0x9, K_f: 0xE,
    K_z: 0xA, K_x: 0x0, K_c: 0xB, K_v: 0xF,
}

MEMORY_SIZE = 4096
ROM_START_ADDRESS = 0x200
FONT_SPRITE_SIZE = 5
STACK_SIZE = 16
KEYS_COUNT = 16
CYCLE_DELAY = 0.001         # seconds between two executed instructions
TIMER_PERIOD = 1 / 60       # delay and sound timers count down at 60Hz
FPS = 500
DEBUG = True if int(os.getenv('DEBUG', 0)) >= 1 else False
SCREEN_HEIGHT = 32
SCREEN_WIDTH = 64
SCALE = 15
BLUE = pygame.Color(80,69,155,255)
LIGHT_BLUE = pygame.Color(136,126,203,255)


# ******************** ERRORS SECTION
class Chip8Error(Exception):
    """fatal condition met while running a program, it names the offending opcode and its address"""
    def __init__(self, opcode, pc, reason=""):
        self.opcode, self.pc = opcode, pc
        word = "????" if opcode is None else f"0x{opcode:04x}"
        msg = f"opcode {word} at address 0x{pc:03x}"
        super().__init__(f"{reason}: {msg}" if reason else msg)

class InvalidOpcodeError(Chip8Error):
    pass

class ExecutionError(Chip8Error):
    pass

class StackOverflowError(IndexError):
    pass

class StackUnderflowError(IndexError):
    pass


# ******************** UTILITIES SECTION
def asm(msg):
    """decorator to print out the ASM of the instruction being called"""
    def decorator(fn):
        @wraps(fn)
        def wrapper_fn(self, op):
            if DEBUG: print(f"mem_addr: 0x{self.pc:04x}    instruction: " + msg.format(**op._asdict()))
            return fn(self, op)
        return wrapper_fn
    return decorator

def get_args():
    parser = argparse.ArgumentParser()
    parser.add_argument("-f", "--file", required=True, help="input rom file")
    parser.add_argument("--shift-in-place", action="store_true",
                        help="8xy6/8xyE shift Vx in place instead of reading Vy")
    return parser.parse_args()

def read_rom(path):
    """read the ROM file at the user specified path, raise an exception if it can't be read"""
    with open(path, mode='rb') as f:
        return f.read()


# ******************** DECODING SECTION
# ********** EVERY INSTRUCTION TELLS THE CPU HOW THE PROGRAM COUNTER MOVES AFTERWARDS
Flow = namedtuple("Flow", ["kind", "target"], defaults=[None])
NEXT = Flow("next")     # pc += 2
SKIP = Flow("skip")     # pc += 4
WAIT = Flow("wait")     # pc stays where it is

def jump(address):
    return Flow("jump", address)

class Opcode(namedtuple("Opcode", ["word", "x", "y", "n", "kk", "nnn"])):
    """one fetched 2-byte instruction, split in the fixed-width fields the instructions need"""
    __slots__ = ()

    @classmethod
    def from_word(cls, word):
        return cls(
            word,
            (word & 0x0F00) >> 8,
            (word & 0x00F0) >> 4,
            word & 0x000F,
            word & 0x00FF,
            word & 0x0FFF,
        )

    @property
    def nibbles(self):
        return (self.word & 0xF000) >> 12, self.x, self.y, self.n

    def __str__(self):
        return f"{self.word:04X}"

# WATCH OUT: masks order is important!!!
# the lookup stops at the first mask producing a known instruction
MASKS = (
    (0xFFFF, (0x00E0, 0x00EE)),
    (0xF0FF, (0xE09E, 0xE0A1, 0xF007, 0xF00A, 0xF015, 0xF018, 0xF01E, 0xF029, 0xF033, 0xF055, 0xF065)),
    (0xF00F, (0x5000, 0x8000, 0x8001, 0x8002, 0x8003, 0x8004, 0x8005, 0x8006, 0x8007, 0x800E, 0x9000)),
    (0xF000, (0x1000, 0x2000, 0x3000, 0x4000, 0x6000, 0x7000, 0xA000, 0xB000, 0xC000, 0xD000)),
)


# ******************** I/O SECTION
class Screen:
    """pygame window the host paints the display buffer on"""
    def __init__(self, w=SCREEN_WIDTH, h=SCREEN_HEIGHT, s=SCALE, bg_color=BLUE, fg_color=LIGHT_BLUE):
        self.w, self.h, self.scale = w, h, s
        self.background = bg_color
        self.foreground = fg_color
        self.surface = pygame.display.set_mode(
            (w * self.scale, h * self.scale),
        )
        self.surface.fill(self.background)

    def read_pixel(self, x, y):
        """return 1 if pixel is ON, return 0 if pixel is OFF"""
        p = self.surface.get_at_mapped((x * self.scale, y * self.scale))
        return 0 if p == self.surface.map_rgb(self.background) else 1

    def render(self, bitmap):
        """paint a row-major snapshot of the display buffer and make it visible"""
        self.surface.fill(self.background)
        for i, pixel in enumerate(bitmap):
            if pixel:
                x, y = i % self.w, i // self.w
                pygame.draw.rect(
                    self.surface,
                    self.foreground,
                    (x * self.scale, y * self.scale, self.scale, self.scale)
                )
        pygame.display.flip()

class DisplayBuffer:
    """64x32 monochrome bitmap, sprites are XORed onto it"""
    def __init__(self, w=SCREEN_WIDTH, h=SCREEN_HEIGHT):
        self.w, self.h = w, h
        self.pixels = [False] * w * h

    def __getitem__(self, pos):
        x, y = pos
        return self.pixels[y * self.w + x]

    def clear(self):
        self.pixels[:] = [False] * self.w * self.h

    def snapshot(self):
        """read-only copy of the bitmap, row after row"""
        return tuple(self.pixels)

    def write_sprite(self, sprite, x, y):
        """
        XOR the sprite rows onto the bitmap with their top left corner at (x, y)
        bits falling outside the bitmap are dropped, there is no wrap around
        return True if any pixel that was ON got turned OFF
        """
        collision = False
        # step through each sprite byte, one byte per row
        for row, sprite_byte in enumerate(sprite):
            y_coordinate = y + row
            if y_coordinate >= self.h:
                break
            # step through each byte's bits, most significant first
            for col in range(8):
                x_coordinate = x + col
                if x_coordinate >= self.w:
                    break
                bit = ((sprite_byte >> (7 - col)) & 0x1) == 1
                index = y_coordinate * self.w + x_coordinate
                pixel_state = self.pixels[index]
                # the only case when a pixel gets erased is when it was ON and is turned ON again
                if pixel_state and bit:
                    collision = True
                self.pixels[index] = pixel_state != bit
        return collision

class KeypadState:
    """the 16 hexadecimal keys, each one either pressed or released"""
    def __init__(self):
        self.keys = [False] * KEYS_COUNT

    def __getitem__(self, key):
        return self.keys[key]

    def __setitem__(self, key, value):
        self.keys[key] = bool(value)

    def __contains__(self, key):
        """`key in keypad` is True while that key is held down"""
        return self.keys[key]

    def __str__(self):
        return "".join(f"{k:X}" for k, pressed in enumerate(self.keys) if pressed) or "-"

    def press(self, key):
        self[key] = True

    def release(self, key):
        self[key] = False

    def untouched(self):
        return not any(self.keys)

    def lowest_pressed(self):
        """get the lowest key currently pressed, None when no key is down"""
        for key, pressed in enumerate(self.keys):
            if pressed:
                return key
        return None


# ******************** MEMORY SECTION
# ********** WRAPS A LIST TO REPRESENT A STACK WITH A LIMITED SIZE OF 16 ADDRESSES
class CallStack:
    def __init__(self, size=STACK_SIZE):
        self.addr_list = []
        self.size = size

    def __len__(self):
        return len(self.addr_list)

    def __str__(self):
        return str([f"0x{addr:03x}" for addr in self.addr_list])

    def append(self, address):
        if len(self.addr_list) >= self.size:
            raise StackOverflowError(f"The CHIP-8 stack can contain at most {self.size} addresses. Limit exceeded")
        self.addr_list.append(address)

    def pop(self):
        if not self.addr_list:
            raise StackUnderflowError("The CHIP-8 stack is empty, there is no subroutine to return from")
        return self.addr_list.pop()

# ********** WRAPS A BYTEARRAY TO REPRESENT THE MAIN MEMORY WITH A LIMITED SIZE OF 4KB
class Memory:
    def __init__(self):
        self.inner = bytearray(MEMORY_SIZE)
        self.inner[0x00:0x00+len(C8_FONTS)] = bytes(C8_FONTS)

    def _check_bounds(self, address, length):
        if address < 0 or address + length > MEMORY_SIZE:
            raise IndexError(f"Memory access out of bounds: 0x{address:04x} + {length} bytes")

    def read_byte(self, address):
        self._check_bounds(address, 1)
        return self.inner[address]

    def write_byte(self, address, value):
        self._check_bounds(address, 1)
        self.inner[address] = value

    def read_sprite(self, address, length):
        """bytes of a sprite of `length` rows starting at `address`"""
        self._check_bounds(address, length)
        return bytes(self.inner[address:address+length])

    @staticmethod
    def sprite_address(digit):
        """address of the built-in font sprite for the hex digit"""
        if not 0x0 <= digit <= 0xF:
            raise ValueError(f"No font sprite for digit {digit}")
        return digit * FONT_SPRITE_SIZE    # each character font is made of 5 bytes

    def load_rom(self, rom):
        """copy the program bytes into memory starting at 0x200"""
        if len(rom) > MEMORY_SIZE - ROM_START_ADDRESS:
            raise ValueError(f"ROM is {len(rom)} bytes long, at most {MEMORY_SIZE - ROM_START_ADDRESS} fit in memory")
        self.inner[ROM_START_ADDRESS:ROM_START_ADDRESS+len(rom)] = rom
        if DEBUG: print(f"A ROM of {len(rom)} bytes has been loaded successfully")


# ******************** TIMERS SECTION
class TimerPair:
    """delay and sound timers, both counting down at 60Hz of wall clock time whatever the instruction rate"""
    def __init__(self, clock=time.monotonic, period=TIMER_PERIOD):
        self.clock = clock
        self.period = period
        self.delay = 0      # delay timer, active when non-zero
        self.sound = 0      # sound timer, active when non-zero
        self.last_tick = clock()

    def tick(self):
        """decrement both timers by one if a period elapsed since the last decrement, return True when they were"""
        now = self.clock()
        if now - self.last_tick < self.period:
            return False
        self.last_tick = now
        if self.delay > 0:
            self.delay -= 1
        if self.sound > 0:
            self.sound -= 1
        return True


# ******************** CPU SECTION
class Chip8:
    def __init__(self, rom=b"", clock=time.monotonic, rng=None, shift_in_place=False):
        self.mem = Memory()
        self.mem.load_rom(rom)
        self.stack = CallStack()
        self.display = DisplayBuffer()
        self.timers = TimerPair(clock)
        self.keypad = KeypadState()
        self.v_regs = [0] * 16
        self.pc = ROM_START_ADDRESS
        self.idx = 0    # specify where the sprites reside in memory
        self.clock = clock
        self.rng = rng if rng is not None else random.Random()
        self.shift_in_place = shift_in_place    # compatibility quirk 2, disabled means the shift source is Vy
        self.last_cycle = None
        self.key_register = None    # register waiting for a keypress, None while running
        self.draw = False
        self.instructions = {
            0x00E0: self._clear_screen,
            0x00EE: self._return,
            0x1000: self._jump,
            0x2000: self._call_addr,
            0x3000: self._skip_if_eq,
            0x4000: self._skip_if_not_eq,
            0x5000: self._skip_if_eq_regs,
            0x6000: self._set_vk,
            0x7000: self._add_to_vk,
            0x8000: self._set_vx_to_vy,
            0x8001: self._set_vx_or_vy,
            0x8002: self._set_vx_and_vy,
            0x8003: self._set_vx_xor_vy,
            0x8004: self._add_vx_vy,
            0x8005: self._sub_vx_vy,
            0x8006: self._shr,
            0x8007: self._subn_vx_vy,
            0x800E: self._shl,
            0x9000: self._skip_if_not_eq_regs,
            0xA000: self._set_idx,
            0xB000: self._jump_plus,
            0xC000: self._random_byte_and,
            0xD000: self._to_screen,
            0xE09E: self._skip_if_pressed,
            0xE0A1: self._skip_if_not_pressed,
            0xF007: self._set_vx_dt,
            0xF00A: self._wait_keypress,
            0xF015: self._set_dt_vx,
            0xF018: self._set_st,
            0xF01E: self._add_to_idx,
            0xF029: self._select_char,
            0xF033: self._bcd_repr,
            0xF055: self._store_vregs,
            0xF065: self._load_vregs,
        }

    def __str__(self):
        registers = f"PC_REGISTER:0x{self.pc:03x} | IDX_REGISTER:0x{self.idx:04x} | VARIABLE_REGISTERS:{self.v_regs}"
        stack = f"STACK:{self.stack}"
        timers = f"DT:{self.timers.delay} | ST:{self.timers.sound}"
        devices = f"KEYPAD:{self.keypad}"
        flags = f"DRAW: {self.draw} | WAITING_FOR_KEY: {self.waiting_for_key}"
        return f"{registers}\n{stack}\n{timers}\n{devices}\n{flags}"

    @property
    def waiting_for_key(self):
        return self.key_register is not None

    def handle_input(self, key, pressed):
        """register a press/release edge coming from the host"""
        self.keypad[key] = pressed

    @asm("CLS")
    def _clear_screen(self, op):
        self.display.clear()
        self.draw = True
        return NEXT

    @asm("RET")
    def _return(self, op):
        """return from a subroutine"""
        return jump(self.stack.pop())

    @asm("JP 0x{nnn:03x}")
    def _jump(self, op):
        return jump(op.nnn)

    @asm("CALL 0x{nnn:03x}")
    def _call_addr(self, op):
        self.stack.append(self.pc + 2)      # return to the instruction after the call
        return jump(op.nnn)

    @asm("SE V{x:X}, {kk}")
    def _skip_if_eq(self, op):
        return SKIP if self.v_regs[op.x] == op.kk else NEXT

    @asm("SNE V{x:X}, {kk}")
    def _skip_if_not_eq(self, op):
        return SKIP if self.v_regs[op.x] != op.kk else NEXT

    @asm("SE V{x:X}, V{y:X}")
    def _skip_if_eq_regs(self, op):
        return SKIP if self.v_regs[op.x] == self.v_regs[op.y] else NEXT

    @asm("SNE V{x:X}, V{y:X}")
    def _skip_if_not_eq_regs(self, op):
        return SKIP if self.v_regs[op.x] != self.v_regs[op.y] else NEXT

    @asm("LD V{x:X}, {kk}")
    def _set_vk(self, op):
        """set the value of one of the 16 variable registers, Vx"""
        self.v_regs[op.x] = op.kk
        return NEXT

    @asm("ADD V{x:X}, {kk}")
    def _add_to_vk(self, op):
        """add to the value already present in one of the variable registers, VF is left alone"""
        self.v_regs[op.x] = (self.v_regs[op.x] + op.kk) & 0xFF    # keep only the lowest 8 bits from the result and store them in Vx
        return NEXT

    @asm("LD V{x:X}, V{y:X}")
    def _set_vx_to_vy(self, op):
        self.v_regs[op.x] = self.v_regs[op.y]
        return NEXT

    @asm("OR V{x:X}, V{y:X}")
    def _set_vx_or_vy(self, op):
        self.v_regs[op.x] |= self.v_regs[op.y]
        return NEXT

    @asm("AND V{x:X}, V{y:X}")
    def _set_vx_and_vy(self, op):
        self.v_regs[op.x] &= self.v_regs[op.y]
        return NEXT

    @asm("XOR V{x:X}, V{y:X}")
    def _set_vx_xor_vy(self, op):
        self.v_regs[op.x] ^= self.v_regs[op.y]
        return NEXT

    # from here on VF is always the last register written, so the flag wins when x is F

    @asm("ADD V{x:X}, V{y:X}")
    def _add_vx_vy(self, op):
        """set Vx = Vx + Vy, VF = carry"""
        total = self.v_regs[op.x] + self.v_regs[op.y]
        self.v_regs[op.x] = total & 0xFF
        self.v_regs[0xF] = 1 if total > 0xFF else 0
        return NEXT

    @asm("SUB V{x:X}, V{y:X}")
    def _sub_vx_vy(self, op):
        """set Vx = Vx - Vy, VF = NOT borrow"""
        vx, vy = self.v_regs[op.x], self.v_regs[op.y]
        self.v_regs[op.x] = (vx - vy) & 0xFF
        self.v_regs[0xF] = 1 if vx >= vy else 0
        return NEXT

    @asm("SUBN V{x:X}, V{y:X}")
    def _subn_vx_vy(self, op):
        """set Vx = Vy - Vx, VF = NOT borrow"""
        vx, vy = self.v_regs[op.x], self.v_regs[op.y]
        self.v_regs[op.x] = (vy - vx) & 0xFF
        self.v_regs[0xF] = 1 if vy >= vx else 0
        return NEXT

    @asm("SHR V{x:X}, V{y:X}")
    def _shr(self, op):
        """set Vx = Vy SHR 1, VF = the bit shifted out"""
        source = self.v_regs[op.x if self.shift_in_place else op.y]     # compatibility quirk 2
        self.v_regs[op.x] = source >> 1
        self.v_regs[0xF] = source & 0x1
        return NEXT

    @asm("SHL V{x:X}, V{y:X}")
    def _shl(self, op):
        """set Vx = Vy SHL 1, VF = the bit shifted out"""
        source = self.v_regs[op.x if self.shift_in_place else op.y]     # compatibility quirk 2
        self.v_regs[op.x] = (source << 1) & 0xFF
        self.v_regs[0xF] = source >> 7
        return NEXT

    @asm("LD I, 0x{nnn:03x}")
    def _set_idx(self, op):
        self.idx = op.nnn
        return NEXT

    @asm("JP V0, 0x{nnn:03x}")
    def _jump_plus(self, op):
        return jump(op.nnn + self.v_regs[0x0])

    @asm("RND V{x:X}, 0x{kk:02x}")
    def _random_byte_and(self, op):
        self.v_regs[op.x] = self.rng.randint(0, 255) & op.kk
        return NEXT

    @asm("DRW V{x:X}, V{y:X}, {n}")
    def _to_screen(self, op):
        """display n-byte sprite starting at memory location I at (Vx, Vy), set VF = collision"""
        sprite = self.mem.read_sprite(self.idx, op.n)
        collision = self.display.write_sprite(sprite, self.v_regs[op.x], self.v_regs[op.y])
        self.v_regs[0xF] = 1 if collision else 0
        self.draw = True
        return NEXT

    @asm("SKP V{x:X}")
    def _skip_if_pressed(self, op):
        """skip the following instruction if the key corresponding to the hex value stored in Vx is pressed"""
        return SKIP if self.v_regs[op.x] in self.keypad else NEXT

    @asm("SKNP V{x:X}")
    def _skip_if_not_pressed(self, op):
        """skip the following instruction if the key corresponding to the hex value stored in Vx is NOT pressed"""
        return NEXT if self.v_regs[op.x] in self.keypad else SKIP

    @asm("LD V{x:X}, DT")
    def _set_vx_dt(self, op):
        self.v_regs[op.x] = self.timers.delay
        return NEXT

    @asm("LD V{x:X}, K")
    def _wait_keypress(self, op):
        """wait for a key press and store its value in Vx"""
        self.key_register = op.x
        return self._poll_keypad()

    @asm("LD DT, V{x:X}")
    def _set_dt_vx(self, op):
        self.timers.delay = self.v_regs[op.x]
        return NEXT

    @asm("LD ST, V{x:X}")
    def _set_st(self, op):
        self.timers.sound = self.v_regs[op.x]
        return NEXT

    @asm("ADD I, V{x:X}")
    def _add_to_idx(self, op):
        self.idx = (self.idx + self.v_regs[op.x]) & 0xFFFF
        return NEXT

    @asm("LD F, V{x:X}")
    def _select_char(self, op):
        """set I to location of sprite for digit Vx"""
        self.idx = self.mem.sprite_address(self.v_regs[op.x])
        return NEXT

    @asm("LD B, V{x:X}")
    def _bcd_repr(self, op):
        """store the hundreds digit of Vx in memory at I, the tens digit at I+1, the ones digit at I+2"""
        value = self.v_regs[op.x]
        for offset, digit in enumerate((value // 100, value // 10 % 10, value % 10)):
            self.mem.write_byte(self.idx + offset, digit)
        return NEXT

    @asm("LD [I], V{x:X}")
    def _store_vregs(self, op):
        """store registers V0 through Vx (included) in memory starting at location I, I is not changed"""
        for offset in range(op.x + 1):
            self.mem.write_byte(self.idx + offset, self.v_regs[offset])
        return NEXT

    @asm("LD V{x:X}, [I]")
    def _load_vregs(self, op):
        """read registers V0 through Vx (included) from memory starting at location I, I is not changed"""
        for offset in range(op.x + 1):
            self.v_regs[offset] = self.mem.read_byte(self.idx + offset)
        return NEXT

    def _poll_keypad(self):
        if self.keypad.untouched():
            return WAIT     # stay on the same instruction until a key is pressed
        self.v_regs[self.key_register] = self.keypad.lowest_pressed()
        self.key_register = None
        return NEXT

    def fetch(self):
        """each instruction is two bytes long, most significant byte first"""
        return Opcode.from_word(self.mem.read_byte(self.pc) << 8 | self.mem.read_byte(self.pc + 1))

    def decode(self, opcode):
        """decode opcodes using masks and return respective function"""
        if DEBUG: print(f"opcode: 0x{opcode.word:04x}", end="    ")
        for mask, ops in MASKS:
            if (opcode.word & mask) in ops:
                return self.instructions[opcode.word & mask]
        raise InvalidOpcodeError(opcode.word, self.pc, "Unknown instruction")

    def execute(self):
        """fetch, decode and execute the instruction at pc, return its control flow effect"""
        opcode = None
        try:
            opcode = self.fetch()
            instruction = self.decode(opcode)
            return instruction(opcode)
        except (IndexError, ValueError) as err:
            raise ExecutionError(None if opcode is None else opcode.word, self.pc, str(err)) from err

    def advance(self, flow):
        if flow.kind == "next":
            self.pc += 0x2
        elif flow.kind == "skip":
            self.pc += 0x4
        elif flow.kind == "jump":
            self.pc = flow.target

    def step(self):
        """
        emulate one machine cycle (fetch opcode, decode opcode, execute opcode, update timers)
        return the control flow effect applied to pc, None when called again too early
        """
        self.draw = False
        now = self.clock()
        if self.last_cycle is not None and now - self.last_cycle < CYCLE_DELAY:
            self.timers.tick()
            return None
        self.last_cycle = now
        flow = self._poll_keypad() if self.waiting_for_key else self.execute()
        self.advance(flow)
        self.timers.tick()
        return flow


# ******************** ENTRY POINT SECTION
def main():
    args = get_args()
    try:
        chip = Chip8(read_rom(args.file), shift_in_place=args.shift_in_place)
    except (OSError, ValueError) as err:
        sys.exit(f"Unable to load the ROM at path {args.file}: {err}")
    # pygame initialization
    pygame.init()
    clock = pygame.time.Clock()
    pygame.display.set_caption(os.path.basename(args.file))
    s = Screen()
    # emulation loop
    run = True
    try:
        while run:
            # frames per second
            clock.tick(FPS)
            # process user input
            # loop throught the event queue
            for event in pygame.event.get():
                if event.type == pygame.KEYDOWN:
                    if event.key == pygame.K_ESCAPE:
                        run = False
                    elif event.key in KEY_MAPPINGS:
                        chip.handle_input(KEY_MAPPINGS[event.key], True)
                elif event.type == pygame.KEYUP:
                    if event.key in KEY_MAPPINGS:
                        chip.handle_input(KEY_MAPPINGS[event.key], False)
                elif event.type == pygame.QUIT:
                    run = False
            chip.step()
            # refresh screen if needed
            if chip.draw:
                s.render(chip.display.snapshot())
    except Chip8Error as err:
        sys.exit(f"********** THE EMULATOR CRASHED ({err}) WITH THE FOLLOWING STATE\n{chip}")
    finally:
        pygame.quit()


if __name__ == "__main__":
    main()
