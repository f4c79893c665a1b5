r"""@package exprgraph.codegen

Source code generation for graph functions.

The CodeGenerator walks the algorithm of a function.GraphFunction in
topological order and lets each node write its operation as a sequence of
element-wise assignment statements using node.MXNode.generate_operation().
Each buffer is referred to by a name:

    * `x<i>` for the i'th input,
    * `r<i>` for the i'th output,
    * `w<k>` for the k'th work buffer.

Nodes working in-place share their dependency's buffer and hence its name,
in which case they write nothing at all.

Two target languages are supported, C and Python. The statements themselves
are identical apart from the terminating semicolon; only the surrounding
function definition and the import of math functions differ. Generated
Python works on NumPy `float64` scalars and uses NumPy's elementary
functions, so division by zero and arguments outside a function's domain
give `inf` and `nan` exactly like numeric evaluation does.

@b Examples

~~~.py
x = MX.sym('x', 2, 3)
f = GraphFunction([x], [sin(reshape(x, 3, 2))], name='f')
print(CodeGenerator(language='c').generate(f))
~~~
"""

import io
import logging

import numpy as np


__all__ = [
    "CodeGenerator",
]


logger = logging.getLogger(__name__)


class CodeGenerator(object):
    r"""Create source code for graph functions."""

    def __init__(self, language='c', indent=None, real_t='double'):
        r"""Init function.

        Args:
            language: Either ``'c'`` or ``'python'``.
            indent: String to indent statements with. Default is two spaces
                    for C and four for Python.
            real_t: Floating point type used in C declarations.
        """
        if language not in ('c', 'python'):
            raise ValueError("Unknown language: %s" % language)
        ## Target language.
        self.language = language
        if indent is None:
            indent = "  " if language == 'c' else "    "
        ## Indentation of each statement.
        self.indent = indent
        ## C type of the buffers.
        self.real_t = real_t
        self._functions = set()

    def use_function(self, fname):
        r"""Register that the math function `fname` is used by the code."""
        self._functions.add(fname)

    def assign(self, stream, lhs, rhs):
        r"""Write one assignment statement."""
        end = ";" if self.language == 'c' else ""
        stream.write("%s%s = %s%s\n" % (self.indent, lhs, rhs, end))

    def constant(self, value):
        r"""Return the literal representing a floating point constant.

        Python constants are NumPy `float64` scalars, so that arithmetic on
        them follows IEEE semantics (e.g. `1/0` gives `inf`).
        """
        value = float(value)
        if self.language == 'python':
            self.use_function('float64')
            if np.isfinite(value):
                return "float64(%r)" % value
            return "float64('%r')" % value
        if np.isfinite(value):
            return repr(value)
        self.use_function('INFINITY')
        if np.isnan(value):
            return "NAN"
        return "INFINITY" if value > 0 else "-INFINITY"

    def buffer_names(self, fcn):
        r"""Map the work buffer indices of a function to names."""
        names = dict((idx, "w%d" % idx) for idx in range(fcn.n_work))
        for i, idx in enumerate(fcn.input_work):
            names[idx] = "x%d" % i
        return names

    def generate_body(self, fcn, stream):
        r"""Write the statements evaluating `fcn` to `stream`."""
        names = self.buffer_names(fcn)
        for el in fcn.algorithm:
            if el.node.is_symbolic():
                continue
            el.node.generate_operation(
                stream, [names[a] for a in el.arg], [names[el.res]], self
            )
        for i, idx in enumerate(fcn.output_work):
            for k in range(fcn.output(i).nnz):
                self.assign(stream, "r%d[%d]" % (i, k), "%s[%d]" % (names[idx], k))

    def generate(self, fcn, name=None):
        r"""Return the complete source code of a function computing `fcn`.

        Args:
            fcn:    The function.GraphFunction to generate code for.
            name:   Name of the generated function. Default is the name of
                    `fcn`.
        """
        name = fcn.name if name is None else name
        if not name.isidentifier():
            raise ValueError("Invalid function name: %r" % name)
        self._functions = set()
        body = io.StringIO()
        self.generate_body(fcn, body)
        used = set(range(fcn.n_work)) - set(fcn.input_work)
        used = sorted(idx for idx in used if fcn.work_nnz[idx] > 0)
        if self.language == 'c':
            code = self._wrap_c(fcn, name, used, body.getvalue())
        else:
            code = self._wrap_python(fcn, name, used, body.getvalue())
        logger.debug("Generated %d lines of %s code for '%s'.",
                     code.count("\n"), self.language, name)
        return code

    def _wrap_c(self, fcn, name, used, body):
        out = io.StringIO()
        if self._functions:
            out.write("#include <math.h>\n\n")
        args = ["const %s* x%d" % (self.real_t, i) for i in range(fcn.n_in)]
        args += ["%s* r%d" % (self.real_t, i) for i in range(fcn.n_out)]
        out.write("void %s(%s) {\n" % (name, ", ".join(args)))
        for idx in used:
            out.write("%s%s w%d[%d];\n" % (self.indent, self.real_t, idx,
                                          fcn.work_nnz[idx]))
        out.write(body)
        out.write("}\n")
        return out.getvalue()

    def _wrap_python(self, fcn, name, used, body):
        out = io.StringIO()
        converted = [i for i in range(fcn.n_in) if fcn.input(i).nnz]
        if converted:
            self.use_function('float64')
        funcs = sorted(f for f in self._functions if f != 'INFINITY')
        if funcs:
            out.write("from numpy import %s\n\n\n" % ", ".join(funcs))
        args = ["x%d" % i for i in range(fcn.n_in)]
        args += ["r%d" % i for i in range(fcn.n_out)]
        out.write("def %s(%s):\n" % (name, ", ".join(args)))
        for i in converted:
            out.write("%sx%d = [float64(v) for v in x%d]\n" % (self.indent, i, i))
        for idx in used:
            out.write("%sw%d = [0.0] * %d\n" % (self.indent, idx,
                                               fcn.work_nnz[idx]))
        if not body and not used and not converted:
            body = "%spass\n" % self.indent
        out.write(body)
        return out.getvalue()
