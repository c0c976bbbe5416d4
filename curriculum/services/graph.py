# curriculum/services/graph.py
"""Curriculum mapping graph: PLO/PI -> course -> CLO, as nodes and edges."""
from collections import OrderedDict

from ..models import CLO, PI, PLO, Course, PiCloLink, PloCloLink, PloPiLink


def as_label(code, name, label_mode):
    if label_mode == 'full' and name:
        return f"{code} — {name}"
    return code


class GraphBuilder:
    def __init__(self, label_mode='full'):
        self.label_mode = label_mode
        self.nodes = OrderedDict()
        self.edges = OrderedDict()

    def add_node(self, node_id, node_type, code, name='', **extra):
        if node_id not in self.nodes:
            self.nodes[node_id] = {
                'id': node_id,
                'type': node_type,
                'code': code,
                'label': as_label(code, name, self.label_mode),
                **extra,
            }
        return self.nodes[node_id]

    def ensure_node(self, node_id, node_type, code, **extra):
        """Create a bare node for codes referenced by links but never uploaded."""
        return self.add_node(node_id, node_type, code, **extra)

    def add_edge(self, edge_id, source, target, kind, label=None, weight=1, **extra):
        if edge_id in self.edges:
            return self.edges[edge_id]
        self.edges[edge_id] = {
            'id': edge_id,
            'source': source,
            'target': target,
            'kind': kind,
            'label': label or kind,
            'weight': weight,
            **extra,
        }
        return self.edges[edge_id]


def plo_node(code):
    return f"PLO:{code}"


def pi_node(code):
    return f"PI:{code}"


def course_node(code):
    return f"COURSE:{code}"


def clo_node(course_code, clo_code):
    return f"CLO:{course_code}:{clo_code}"


def _aggregate(links, outcome_attr):
    """Group CLO links into (outcome, course) -> sorted distinct levels and count."""
    grouped = OrderedDict()
    for link in links:
        key = (getattr(link, outcome_attr), link.course_code)
        entry = grouped.setdefault(key, {'levels': set(), 'count': 0})
        entry['levels'].add(link.level)
        entry['count'] += 1
    return grouped


def build_graph(framework, include_pi=False, include_plopi=False, shortcuts=False, label_mode='full'):
    builder = GraphBuilder(label_mode=label_mode)

    plos = list(PLO.objects.filter(framework=framework))
    pis = list(PI.objects.filter(framework=framework)) if (include_pi or include_plopi) else []
    courses = list(Course.objects.filter(framework=framework))
    clos = list(CLO.objects.filter(framework=framework))
    plo_clo = list(PloCloLink.objects.filter(framework=framework))
    pi_clo = list(PiCloLink.objects.filter(framework=framework)) if include_pi else []
    plo_pi = list(PloPiLink.objects.filter(framework=framework)) if include_plopi else []

    for plo in plos:
        builder.add_node(plo_node(plo.code), 'PLO', plo.code, plo.description)
    for pi in pis:
        builder.add_node(pi_node(pi.code), 'PI', pi.code, pi.description)
    for course in courses:
        builder.add_node(course_node(course.course_code), 'COURSE', course.course_code, course.course_name)
    for clo in clos:
        builder.add_node(
            clo_node(clo.course_code, clo.clo_code), 'CLO', clo.clo_code, clo.clo_text,
            course_code=clo.course_code,
        )

    def link_clo(course_code, clo_code):
        course_id = course_node(course_code)
        clo_id = clo_node(course_code, clo_code)
        builder.ensure_node(course_id, 'COURSE', course_code)
        builder.ensure_node(clo_id, 'CLO', clo_code, course_code=course_code)
        builder.add_edge(f"E:COURSECLO:{course_code}:{clo_code}", course_id, clo_id, 'COURSE–CLO')
        return course_id, clo_id

    for clo in clos:
        link_clo(clo.course_code, clo.clo_code)
    for link in plo_clo + pi_clo:
        link_clo(link.course_code, link.clo_code)

    for (plo_code, course_code), entry in _aggregate(plo_clo, 'plo_code').items():
        source = builder.ensure_node(plo_node(plo_code), 'PLO', plo_code)['id']
        levels = '/'.join(str(level) for level in sorted(entry['levels']))
        builder.add_edge(
            f"E:PLOCOURSE:{plo_code}:{course_code}", source, course_node(course_code), 'PLO–COURSE',
            label=f"PLO–COURSE ({levels})", weight=entry['count'],
        )

    for (pi_code, course_code), entry in _aggregate(pi_clo, 'pi_code').items():
        source = builder.ensure_node(pi_node(pi_code), 'PI', pi_code)['id']
        levels = '/'.join(str(level) for level in sorted(entry['levels']))
        builder.add_edge(
            f"E:PICOURSE:{pi_code}:{course_code}", source, course_node(course_code), 'PI–COURSE',
            label=f"PI–COURSE ({levels})", weight=entry['count'],
        )

    for link in plo_pi:
        source = builder.ensure_node(plo_node(link.plo_code), 'PLO', link.plo_code)['id']
        target = builder.ensure_node(pi_node(link.pi_code), 'PI', link.pi_code)['id']
        builder.add_edge(
            f"E:PLOPI:{link.plo_code}:{link.pi_code}", source, target, 'PLO–PI',
            label=f"PLO–PI ({link.level})", level=link.level,
        )

    if shortcuts:
        for link in plo_clo:
            builder.add_edge(
                f"E:PLOCLO:{link.plo_code}:{link.course_code}:{link.clo_code}",
                plo_node(link.plo_code), clo_node(link.course_code, link.clo_code), 'PLO–CLO',
                label=f"PLO–CLO ({link.level})", level=link.level,
            )
        for link in pi_clo:
            builder.add_edge(
                f"E:PICLO:{link.pi_code}:{link.course_code}:{link.clo_code}",
                pi_node(link.pi_code), clo_node(link.course_code, link.clo_code), 'PI–CLO',
                label=f"PI–CLO ({link.level})", level=link.level,
            )

    nodes = list(builder.nodes.values())
    edges = list(builder.edges.values())
    return {
        'ok': True,
        'summary': {
            'counts': {
                'plos': len(plos),
                'courses': len(courses),
                'clos': len(clos),
                'pis': len(pis),
                'links_plo_clo': len(plo_clo),
                'links_pi_clo': len(pi_clo),
                'links_plo_pi': len(plo_pi),
                'nodes': len(nodes),
                'edges': len(edges),
            },
            'options': {
                'include_pi': include_pi,
                'include_plopi': include_plopi,
                'shortcuts': shortcuts,
                'label_mode': label_mode,
            },
        },
        'nodes': nodes,
        'edges': edges,
        'elements': [{'data': node} for node in nodes] + [{'data': edge} for edge in edges],
    }
