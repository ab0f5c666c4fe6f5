import os

import numpy as onp

from macrofem.fem.refineable_mesh import RefineableRectangleWithHoleMesh
from macrofem.fem.mesh import RectangleWithHoleMesh
from macrofem.fem.solver import black_box_newton_solve
from macrofem.geometry import Circle
from macrofem.physics import assemble_traction_residuals, traction_elements
from macrofem.utils import save_as_vtk

data_dir = os.path.join(os.path.dirname(__file__), 'data')
L = 1.0
r_hole = 0.2
nnode_1d = 3

# Mesh refined towards the hole
hole = Circle(0.0, 0.0, r_hole)
mesh = RefineableRectangleWithHoleMesh(hole, length=L, nnode_1d=nnode_1d,
                                       max_refinement_level=3)
for _ in range(3):
    # crude indicator: elements close to the hole get large errors
    centres = onp.array([element.get_x(onp.zeros(2)) for element in mesh.elements])
    errors = 0.1 * r_hole / onp.linalg.norm(centres, axis=1) ** 2
    n_refined, n_unrefined = mesh.adapt(errors, max_error=0.1, min_error=1e-4)
    print(f"refined {n_refined}, unrefined {n_unrefined}: {mesh.n_element} elements")

# Uniaxial pull on the right edge, pressure in the hole
pull = traction_elements(mesh, 1, lambda x, n: onp.array([1.0, 0.0]))
pressure = traction_elements(mesh, 4, lambda x, n: -0.5 * n)
residuals = assemble_traction_residuals(pull + pressure, mesh.n_node)
print(f"total load: {residuals.sum(axis=0)}")

hanging = onp.array([float(node.is_hanging) for node in mesh.nodes])
levels = onp.array([element.tree.level for element in mesh.elements])
save_as_vtk(mesh, os.path.join(data_dir, 'vtk/rectangle_with_hole.vtu'),
            cell_infos=[('level', levels)],
            point_infos=[('load', residuals), ('hanging', hanging)])


# Hole radius that leaves a prescribed area of material
target_area = 0.75


def area_residual(target, x):
    mesh = RectangleWithHoleMesh(Circle(0.0, 0.0, x[0]), length=L, nnode_1d=5)
    return onp.array([sum(element.size() for element in mesh.elements) - target])


result = black_box_newton_solve(area_residual, target_area, [r_hole],
                                options={"use_step_length_control": True,
                                         "fd_step": 1e-6, "tol": 1e-10})
print(f"radius {result.unknowns[0]:.6f} after {result.n_iter} Newton steps "
      f"(exact circle: {onp.sqrt((L ** 2 - target_area) / onp.pi):.6f})")
