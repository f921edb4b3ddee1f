"""
functions that assist with processing a web service request
"""
import re
from collections import OrderedDict
from urllib.parse import parse_qs

__all__ = [ 'order_accepts', 'accepts_type', 'get_query_params', 'query_param_as_bool',
            'query_param_as_list', 'get_content_type' ]

_TRUE_VALUES = ("1", "true", "yes", "on", "")

def order_accepts(accepts):
    """
    order the given accept values according to their q-value.
    :param accepts:  the list of accept values with their q-values attached.  This can be given either
                     as a str or a list of str, each representing the value of the HTTP Accept request
                     header value.
                     :type accepts: str or list of str
    :return:  a list of the mime types in order of q-value.  (The q-values will be dropped; types
              given a q-value of zero are excluded.)
    """
    if isinstance(accepts, str):
        accepts = [accepts]
    vals = []
    for a in accepts:
        vals.extend([b.strip() for b in a.split(',') if b.strip()])

    weighted = []
    for val in vals:
        q = 1.0
        m = re.search(r';\s*q=(\d+(\.\d+)?)', val)
        if m:
            q = float(m.group(1))
        weighted.append((re.sub(r';.*$', '', val).strip(), q))

    # sort() is stable, so equally weighted types keep the client's order
    weighted.sort(key=lambda a: a[1], reverse=True)
    return [a[0] for a in weighted if a[1] > 0]

def accepts_type(ctype: str, accepts: list) -> bool:
    """
    return True if the given content type is acceptable according to a list of acceptable
    types (as returned by :py:func:`order_accepts`).  An empty list accepts anything.
    """
    if not accepts:
        return True
    major = ctype.split('/')[0]
    for acc in accepts:
        if acc in ('*', '*/*', ctype) or acc == major+'/*':
            return True
    return False

def get_query_params(env: dict) -> OrderedDict:
    """
    return the query parameters from a WSGI environment as a dictionary in which each value is
    a list of the values given for that parameter.
    """
    out = OrderedDict()
    qstr = env.get('QUERY_STRING')
    if qstr:
        for k, v in parse_qs(qstr, keep_blank_values=True).items():
            out[k] = v
    return out

def query_param_as_bool(params: dict, name: str, default: bool=False) -> bool:
    """
    interpret the last value of a query parameter as a boolean.  A parameter given without a value
    (e.g. ``?include_count``) is considered True.
    """
    vals = params.get(name)
    if not vals:
        return default
    return vals[-1].strip().lower() in _TRUE_VALUES

def query_param_as_list(params: dict, name: str) -> list:
    """
    return all of the values of a query parameter, splitting comma-separated values into separate
    items.  An empty list is returned if the parameter was not given.
    """
    out = []
    for val in params.get(name, []):
        out.extend([v.strip() for v in val.split(',') if v.strip()])
    return out

def get_content_type(env: dict):
    """
    return the base MIME type of the request body (lower-cased and without parameters) along with
    a dictionary of the type's parameters (like ``boundary`` or ``charset``).
    """
    ctype = env.get('CONTENT_TYPE', '')
    parts = [p.strip() for p in ctype.split(';')]
    params = {}
    for p in parts[1:]:
        if '=' in p:
            k, v = p.split('=', 1)
            params[k.strip().lower()] = v.strip().strip('"')
    return parts[0].lower(), params
